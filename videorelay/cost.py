from typing import Any, Dict, Optional

# USD per generated second, keyed by model then size
PricingTable = Dict[str, Dict[str, float]]

VIDEO_PRICING: PricingTable = {
    "sora-2": {
        "720x1280": 0.10,
        "1280x720": 0.10,
    },
    "sora-2-pro": {
        "720x1280": 0.30,
        "1280x720": 0.30,
        "1024x1792": 0.50,
        "1792x1024": 0.50,
    },
}


def price_per_second(model: str, size: str, pricing: Optional[PricingTable] = None) -> Optional[float]:
    table = pricing or VIDEO_PRICING
    return table.get(model.strip(), {}).get(size.strip())


def calculate_video_cost(*, model: str, size: str, seconds: int, pricing: Optional[PricingTable] = None) -> Dict[str, Any]:
    """
    Estimate the cost of one generation. Unknown model/size pairs still get a
    record with a zero rate so the UI can show the job as unpriced.
    """
    seconds = max(0, int(seconds))
    rate = price_per_second(model, size, pricing)
    return {
        "model": model,
        "size": size,
        "seconds": seconds,
        "pricePerSecond": rate or 0.0,
        "estimatedCost": round((rate or 0.0) * seconds, 6),
        "currency": "USD",
        "priced": rate is not None,
    }
