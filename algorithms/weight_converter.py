class WeightConverter:
    """Utility for converting between kg and lb and loading a barbell."""

    KG_TO_LB = 2.2046226218
    PLATE_INCREMENT = {"kg": 2.5, "lb": 5.0}
    PLATES = {
        "kg": [25.0, 20.0, 15.0, 10.0, 5.0, 2.5, 1.25],
        "lb": [45.0, 35.0, 25.0, 10.0, 5.0, 2.5],
    }
    BAR_WEIGHT = {"kg": 20.0, "lb": 45.0}

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def _check_unit(unit: str) -> None:
        if unit not in WeightConverter.PLATES:
            raise ValueError(f"unknown unit: {unit}")

    @staticmethod
    def from_kg(kg: float, unit: str) -> float:
        WeightConverter._check_unit(unit)
        return kg if unit == "kg" else WeightConverter.kg_to_lb(kg)

    @staticmethod
    def to_kg(value: float, unit: str) -> float:
        WeightConverter._check_unit(unit)
        return value if unit == "kg" else WeightConverter.lb_to_kg(value)

    @staticmethod
    def plates_per_side(total: float, unit: str = "kg") -> dict:
        """Greedy plate breakdown for one side of a standard bar."""
        WeightConverter._check_unit(unit)
        bar = WeightConverter.BAR_WEIGHT[unit]
        if total <= bar:
            return {"bar": bar, "per_side": 0.0, "plates": [], "remainder": 0.0}
        remaining = (total - bar) / 2
        plates: list[tuple[float, int]] = []
        for plate in WeightConverter.PLATES[unit]:
            count = int(remaining // plate)
            if count > 0:
                plates.append((plate, count))
                remaining -= count * plate
        return {
            "bar": bar,
            "per_side": (total - bar) / 2,
            "plates": plates,
            "remainder": round(remaining, 2),
        }
