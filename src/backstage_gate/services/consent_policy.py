"""Configurable consent taxonomy.

A deployment lists the brands a visitor can opt into. In ``single`` mode the
visitor answers once and the answer applies to every brand; in ``per_brand``
mode they answer brand by brand. Brands listed as required must be accepted
before a submission is allowed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from backstage_gate.core.errors import ValidationError
from backstage_gate.core.settings import Settings

ConsentMode = Literal["single", "per_brand"]


@dataclass(frozen=True)
class ConsentDecision:
    accepted: dict[str, bool]

    @property
    def any_accepted(self) -> bool:
        return any(self.accepted.values())

    @property
    def accepted_brands(self) -> list[str]:
        return [brand for brand, value in self.accepted.items() if value]


class ConsentPolicy:
    def __init__(
        self,
        brands: Sequence[str],
        mode: ConsentMode = "single",
        required_brands: Sequence[str] | None = None,
    ) -> None:
        if not brands:
            raise ValueError("at least one consent brand must be configured")
        self.brands = list(dict.fromkeys(brands))
        self.mode = mode
        if required_brands is None:
            required_brands = self.brands if mode == "single" else []
        unknown = set(required_brands) - set(self.brands)
        if unknown:
            raise ValueError(f"required consent brands not configured: {sorted(unknown)}")
        self.required_brands = list(required_brands)

    @classmethod
    def from_settings(cls, config: Settings) -> ConsentPolicy:
        return cls(config.consent_brands, config.consent_mode, config.consent_required_brands)

    def evaluate(self, raw: bool | Mapping[str, bool]) -> ConsentDecision:
        """Turn the visitor's raw answer into a per-brand decision.

        Raises:
            ValidationError: For the wrong answer shape, unknown brands or a
                declined required brand.
        """
        if self.mode == "single":
            if not isinstance(raw, bool):
                raise ValidationError(
                    "Consent must be a single yes/no answer",
                    details={"field": "consent"},
                )
            accepted = {brand: raw for brand in self.brands}
        else:
            if isinstance(raw, bool) or not isinstance(raw, Mapping):
                raise ValidationError(
                    "Consent must be given per brand",
                    details={"field": "consent", "brands": self.brands},
                )
            unknown = sorted(set(raw) - set(self.brands))
            if unknown:
                raise ValidationError(
                    "Unknown consent brand",
                    details={"field": "consent", "unknown": unknown},
                )
            accepted = {brand: bool(raw.get(brand, False)) for brand in self.brands}

        missing = [brand for brand in self.required_brands if not accepted[brand]]
        if missing:
            raise ValidationError(
                "You must accept the required consent to continue",
                details={"field": "consent", "missing": missing},
            )
        return ConsentDecision(accepted=accepted)


__all__ = ["ConsentDecision", "ConsentMode", "ConsentPolicy"]
