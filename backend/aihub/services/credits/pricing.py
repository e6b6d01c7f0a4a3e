# backend/aihub/services/credits/pricing.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class CreditPackage:
    id: str
    name: str
    credits: int
    price: int  # toman
    description: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


CREDIT_PACKAGES: List[CreditPackage] = [
    CreditPackage("basic", "پایه", 100, 50_000, "مناسب برای شروع"),
    CreditPackage("standard", "استاندارد", 500, 200_000, "محبوب‌ترین"),
    CreditPackage("premium", "حرفه‌ای", 1500, 500_000, "بهترین ارزش"),
    CreditPackage("enterprise", "سازمانی", 5000, 1_500_000, "برای تیم‌ها"),
]


@dataclass(frozen=True)
class FeatureCosts:
    chat_message: int = 1  # base cost, model surcharge comes from the registry
    image_generation: int = 20
    video_generation: int = 50
    music_generation: int = 30
    voice_generation: int = 15


FEATURE_COSTS = FeatureCosts()


def find_package(package_id: Optional[str]) -> Optional[CreditPackage]:
    for p in CREDIT_PACKAGES:
        if p.id == package_id:
            return p
    return None
