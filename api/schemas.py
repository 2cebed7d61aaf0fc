from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AggregationConfigModel(BaseModel):
    mode: Optional[str] = None
    view: str = "rolling"
    window_days: int = 30
    rolling_mode: str = "average"
    range_days: int = 730
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    variance_mode: str = "population"
    weekly_limit: int = 104
    monthly_limit: int = 24


class ParseSeriesRequest(BaseModel):
    text: str
    value_column_key: str = "value"


class SeriesViewRequest(BaseModel):
    series: Dict[str, Any] = Field(default_factory=dict)
    preset: Optional[str] = None
    config: AggregationConfigModel = Field(default_factory=AggregationConfigModel)
    include_chart: bool = False


class ControlBandRequest(BaseModel):
    observations: List[Optional[float]] = Field(default_factory=list)
    variance_mode: str = "population"


class CorrelationRequest(BaseModel):
    pairs: List[List[Optional[float]]] = Field(default_factory=list)


class AlignedSeriesModel(BaseModel):
    name: str
    values: Dict[str, Any] = Field(default_factory=dict)
    lagged: bool = False


class AlignRequest(BaseModel):
    series: List[AlignedSeriesModel] = Field(default_factory=list)
    from_date: str
    to_date: str
    lag_days: int = 0
    correlate: Optional[List[str]] = None


class ComparisonRequest(BaseModel):
    anchor_series: Dict[str, Any] = Field(default_factory=dict)
    workbook_base64: str
    use_companion: bool = False
    selected: List[str] = Field(default_factory=list)
    window_days: int = 30
    show_days: int = 180
    include_yoy: bool = True


class ExportCsvRequest(BaseModel):
    series: Dict[str, Any] = Field(default_factory=dict)
    value_column_key: str = "value"
    filename: str = "series.csv"


class CapacityViewRequest(BaseModel):
    text: str
    config: AggregationConfigModel = Field(default_factory=AggregationConfigModel)
    plf_pct: Dict[str, float] = Field(default_factory=dict)
    installed: Optional[Dict[str, float]] = None
    start_month: Optional[str] = None
    end_month: Optional[str] = None
    include_chart: bool = False
