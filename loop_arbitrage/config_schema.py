"""
Detector configuration schema using Pydantic
"""

from decimal import Decimal
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError


class DetectorConfig(BaseModel):
    """Thresholds and sizing for a detection pass.

    Passed explicitly to the detector; the core never reads process-wide
    settings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_profit_usd: float = Field(
        default=1.0, ge=0, description="Minimum net profit in USD"
    )
    min_profit_percentage: float = Field(
        default=0.1, ge=0, description="Minimum gross profit as percent of input"
    )
    trade_size_usd: float = Field(
        default=50.0, gt=0, description="Trade notional in USD"
    )
    flashloan_fee_percentage: float = Field(
        default=0.09, ge=0, lt=100, description="Flash loan fee in percent"
    )
    gas_cost_usd: float = Field(
        default=0.30, ge=0, description="Fixed gas cost estimate per loop in USD"
    )
    max_hops: int = Field(default=3, ge=1, le=10)
    max_price_impact_pct: float = Field(default=50.0, gt=0, le=100)
    min_reserve: int = Field(
        default=1000, ge=0, description="Minimum reserve per side in smallest units"
    )
    opportunity_ttl_seconds: float = Field(default=60.0, gt=0)
    default_fee_bps: int = Field(default=30, ge=0, lt=10000)
    enable_direct: bool = True
    enable_triangular: bool = True

    @model_validator(mode="after")
    def validate_search_enabled(self):
        if not self.enable_direct and not self.enable_triangular:
            raise ValueError("at least one of enable_direct/enable_triangular is required")
        return self

    @property
    def flashloan_fee_bps(self) -> int:
        """Flash loan fee in basis points (0.09% -> 9 bps)."""
        return int(Decimal(str(self.flashloan_fee_percentage)) * 100)

    @property
    def direct_enabled(self) -> bool:
        return self.enable_direct and self.max_hops >= 2

    @property
    def triangular_enabled(self) -> bool:
        return self.enable_triangular and self.max_hops >= 3


def validate_detector_config(config_dict: Dict[str, Any]) -> DetectorConfig:
    """
    Validate a configuration dictionary against the detector schema.

    Raises:
        ConfigurationError: If any field is missing, unknown or out of bounds
    """
    try:
        return DetectorConfig(**config_dict)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid detector configuration: {'; '.join(errors)}",
            details={"errors": errors},
        ) from e
