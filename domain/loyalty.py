"""Punti engine: capped loyalty score and derived commission"""
import math
from typing import Iterable, Optional

from domain.enums import PuntiLabel
from domain.exceptions import InvalidPuntiDelta
from domain.value_objects import LoyaltyConfig, PartnerMetrics, PuntiAdjustment

TOP_RATE_THRESHOLD = 40
RELEVANT_THRESHOLD = 80


class LoyaltyScoreEngine:
    """Pure functions of stored punti, parameterized by LoyaltyConfig"""

    def __init__(self, config: LoyaltyConfig):
        self.config = config

    def clamp(self, punti: int) -> int:
        return max(0, min(self.config.max_point_value, int(punti)))

    def apply_increase(self, current: int, delta: int) -> PuntiAdjustment:
        """Add delta, silently truncating at the cap"""
        if delta < 0:
            raise InvalidPuntiDelta(
                "Punti can only be increased",
                {"requested": delta},
            )
        previous = self.clamp(current)
        total = min(self.config.max_point_value, previous + delta)
        return PuntiAdjustment(
            previous=previous,
            requested=delta,
            applied=total - previous,
            total=total,
        )

    def raise_to_floor(self, current: int) -> PuntiAdjustment:
        """Increase applied on approval so new listings start visible"""
        previous = self.clamp(current)
        return self.apply_increase(previous, max(0, self.config.approval_floor - previous))

    def punti_share(self, punti: int, active_punti: Iterable[int]) -> float:
        total = sum(max(0, int(value)) for value in active_punti)
        if total <= 0:
            return 0.0
        return max(0, punti) / total

    def sanitize_commission(self, commission: float) -> float:
        """Round a negotiated rate to a whole percent inside the commission bounds"""
        if not math.isfinite(commission):
            raise ValueError("Partner commission must be a finite number")
        cfg = self.config
        rounded = math.floor(commission + 0.5)
        return float(min(cfg.max_commission, max(cfg.min_commission, rounded)))

    def partner_commission(self, punti: float, override: Optional[float] = None) -> float:
        """Commission for a punti level; a host's negotiated override wins"""
        if override is not None:
            return self.sanitize_commission(override)
        cfg = self.config
        ratio = punti / cfg.max_point_value
        commission = cfg.min_commission + (cfg.max_commission - cfg.min_commission) * ratio
        return min(cfg.max_commission, max(cfg.min_commission, commission))

    @staticmethod
    def label(punti: int) -> PuntiLabel:
        if punti >= RELEVANT_THRESHOLD:
            return PuntiLabel.RELEVANT
        if punti >= TOP_RATE_THRESHOLD:
            return PuntiLabel.TOP_RATE
        return PuntiLabel.STARTER

    def host_metrics(
        self,
        host_punti: Iterable[int],
        platform_punti: Iterable[int],
        commission_override: Optional[float] = None,
    ) -> PartnerMetrics:
        """Aggregate a host's active listings into one partner profile"""
        punti = self.clamp(sum(max(0, int(value)) for value in host_punti))
        return PartnerMetrics(
            punti=punti,
            punti_share=self.punti_share(punti, platform_punti),
            punti_label=self.label(punti),
            partner_commission=self.partner_commission(punti, commission_override),
        )

    def listing_metrics(
        self,
        punti: int,
        platform_punti: Iterable[int],
        commission_override: Optional[float] = None,
    ) -> PartnerMetrics:
        return PartnerMetrics(
            punti=punti,
            punti_share=self.punti_share(punti, platform_punti),
            punti_label=self.label(punti),
            partner_commission=self.partner_commission(punti, commission_override),
        )
