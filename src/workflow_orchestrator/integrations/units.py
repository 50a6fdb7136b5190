"""
时间单位换算
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Union


Number = Union[int, float, Decimal]


class UnitConverter(ABC):
    """单位换算接口"""

    @abstractmethod
    def convert(self, amount: Number, from_uom: str, to_uom: str) -> Decimal:
        """将数值从一种单位换算为另一种单位"""
        pass


class TimeUnitConverter(UnitConverter):
    """时间单位换算（月、年按平均长度计算）"""

    SECONDS_PER_UNIT: Dict[str, Decimal] = {
        "TF_ms": Decimal("0.001"),
        "TF_s": Decimal(1),
        "TF_min": Decimal(60),
        "TF_hr": Decimal(3600),
        "TF_day": Decimal(86400),
        "TF_wk": Decimal(604800),
        "TF_mon": Decimal(2629746),
        "TF_yr": Decimal(31556952),
    }

    # 常用别名
    ALIASES: Dict[str, str] = {
        "ms": "TF_ms",
        "second": "TF_s",
        "seconds": "TF_s",
        "minute": "TF_min",
        "minutes": "TF_min",
        "hour": "TF_hr",
        "hours": "TF_hr",
        "day": "TF_day",
        "days": "TF_day",
        "week": "TF_wk",
        "weeks": "TF_wk",
        "month": "TF_mon",
        "months": "TF_mon",
        "year": "TF_yr",
        "years": "TF_yr",
    }

    def convert(self, amount: Number, from_uom: str, to_uom: str) -> Decimal:
        from_factor = self._factor(from_uom)
        to_factor = self._factor(to_uom)
        return Decimal(str(amount)) * from_factor / to_factor

    def _factor(self, uom: str) -> Decimal:
        key = self.ALIASES.get(uom, uom)
        if key not in self.SECONDS_PER_UNIT:
            raise ValueError(f"Unknown time unit: {uom}")
        return self.SECONDS_PER_UNIT[key]
