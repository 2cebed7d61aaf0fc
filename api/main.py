from __future__ import annotations

import base64
import binascii
from dataclasses import asdict
import logging
import math
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.schemas import (
    AggregationConfigModel,
    AlignRequest,
    CapacityViewRequest,
    ComparisonRequest,
    ControlBandRequest,
    CorrelationRequest,
    ExportCsvRequest,
    ParseSeriesRequest,
    SeriesViewRequest,
)
from powerdash.alignment import AlignedSeriesSpec
from powerdash.calendar_keys import parse_date
from powerdash.capacity import parse_capacity_history
from powerdash.config import CAPACITY_CSV_FILE, SERIES_PRESETS, SeriesPreset, get_settings, normalize_config
from powerdash.ingest import (
    IngestionError,
    coerce_series,
    load_series_file,
    parse_delimited_series,
    parse_spreadsheet_series,
    series_to_csv,
)
from powerdash.stats import control_band, pearson_correlation
from powerdash.views import (
    compute_alignment_view,
    compute_capacity_view,
    compute_comparison_view,
    compute_series_view,
)

logging.basicConfig(level=get_settings().log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Power Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _unknown_preset(name: Optional[str]) -> Optional[JSONResponse]:
    if name and name not in SERIES_PRESETS:
        return JSONResponse(status_code=404, content={"error": f"unknown preset: {name}", "type": "KeyError"})
    return None


def _preset(name: Optional[str]) -> Optional[SeriesPreset]:
    return SERIES_PRESETS.get(name) if name else None


def _series_from_payload(raw: Dict[str, Any]) -> Tuple[Dict[str, float], list]:
    series, errors = coerce_series(raw)
    if errors:
        logger.info("dropped %d invalid series entries", len(errors))
    return series, errors


@app.get("/meta/presets")
def meta_presets():
    try:
        return _json({"presets": [asdict(p) for p in SERIES_PRESETS.values()]})
    except Exception as exc:
        logger.exception("meta_presets failed")
        return _error(exc)


@app.post("/series/parse")
def series_parse(req: ParseSeriesRequest):
    try:
        result = parse_delimited_series(req.text, req.value_column_key)
        return _json(
            {
                "points": [asdict(p) for p in result.points],
                "errors": result.errors,
                "value_column": result.value_column,
                "used_default_column": result.used_default_column,
            }
        )
    except IngestionError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("series_parse failed")
        return _error(exc)


@app.post("/series/parse-xlsx")
async def series_parse_xlsx(request: Request):
    try:
        book = parse_spreadsheet_series(await request.body())
        sheets = [book.primary] + ([book.companion] if book.companion is not None else [])
        return _json(
            {
                "sheets": [
                    {"name": s.name, "columns": s.columns, "dates": s.dates, "latest_date": s.latest_date, "values": s.values}
                    for s in sheets
                ]
            }
        )
    except IngestionError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("series_parse_xlsx failed")
        return _error(exc)


@app.post("/views/series")
def views_series(req: SeriesViewRequest):
    missing = _unknown_preset(req.preset)
    if missing is not None:
        return missing
    try:
        preset = _preset(req.preset)
        config = normalize_config(req.config.model_dump(), preset=preset)
        series, errors = _series_from_payload(req.series)
        payload = compute_series_view(series, config, preset=preset, include_chart=req.include_chart)
        payload["input_errors"] = errors
        return _json(payload)
    except Exception as exc:
        logger.exception("views_series failed")
        return _error(exc)


@app.post("/views/comparison")
def views_comparison(req: ComparisonRequest):
    try:
        try:
            data = base64.b64decode(req.workbook_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise IngestionError(f"workbook_base64 is not valid base64: {exc}") from exc
        book = parse_spreadsheet_series(data)
        series, errors = _series_from_payload(req.anchor_series)
        payload = compute_comparison_view(
            series,
            book,
            use_companion=req.use_companion,
            selected=req.selected,
            window_days=req.window_days,
            show_days=req.show_days,
            include_yoy=req.include_yoy,
        )
        payload["input_errors"] = errors
        return _json(payload)
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("views_comparison failed")
        return _error(exc)


@app.post("/stats/control-band")
def stats_control_band(req: ControlBandRequest):
    try:
        band = control_band(req.observations, req.variance_mode)
        return _json({"band": asdict(band) if band else None})
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("stats_control_band failed")
        return _error(exc)


@app.post("/stats/correlation")
def stats_correlation(req: CorrelationRequest):
    try:
        pairs = [(p[0], p[1]) for p in req.pairs if len(p) == 2]
        return _json({"correlation": pearson_correlation(pairs), "pair_count": len(pairs)})
    except Exception as exc:
        logger.exception("stats_correlation failed")
        return _error(exc)


@app.post("/align")
def align(req: AlignRequest):
    try:
        bounds = []
        for field_name, raw in (("from_date", req.from_date), ("to_date", req.to_date)):
            key = parse_date(raw, allow_serial=False)
            if key is None:
                raise ValueError(f"{field_name}: invalid date '{raw}' (expected DD/MM/YYYY or YYYY-MM-DD)")
            bounds.append(key)

        specs = []
        input_errors: Dict[str, list] = {}
        for s in req.series:
            values, errors = _series_from_payload(s.values)
            if errors:
                input_errors[s.name] = errors
            specs.append(AlignedSeriesSpec(name=s.name, values=values, lagged=s.lagged))
        payload = compute_alignment_view(specs, bounds[0], bounds[1], lag_days=req.lag_days, correlate=req.correlate)
        payload["input_errors"] = input_errors
        return _json(payload)
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("align failed")
        return _error(exc)


@app.post("/export/csv")
def export_csv(req: ExportCsvRequest):
    series, _ = _series_from_payload(req.series)
    csv_bytes = series_to_csv(series, req.value_column_key).encode("utf-8")
    return Response(
        content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={req.filename}"}
    )


@app.get("/presets/{name}/view")
def preset_view(
    name: str,
    view: str = Query(default="rolling"),
    window_days: int = Query(default=30),
    rolling_mode: str = Query(default="average"),
    range_days: int = Query(default=730),
    from_date: Optional[str] = Query(default=None),
    to_date: Optional[str] = Query(default=None),
    include_chart: bool = Query(default=False),
):
    missing = _unknown_preset(name)
    if missing is not None:
        return missing
    try:
        preset = SERIES_PRESETS[name]
        data_dir = get_settings().data_dir
        if data_dir is None or not preset.csv_file:
            return _error(FileNotFoundError("POWERDASH_DATA_DIR is not configured"), 404)
        path = data_dir / preset.csv_file
        if not path.exists():
            return _error(FileNotFoundError(f"{path.name} not found in data directory"), 404)

        result = load_series_file(path, preset.value_column_key)
        raw = AggregationConfigModel(
            view=view,
            window_days=window_days,
            rolling_mode=rolling_mode,
            range_days=range_days,
            from_date=from_date,
            to_date=to_date,
        ).model_dump()
        cfg = normalize_config(raw, preset=preset)
        payload = compute_series_view(result.to_series(), cfg, preset=preset, include_chart=include_chart)
        payload["input_errors"] = result.errors
        return _json(payload)
    except IngestionError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("preset_view failed")
        return _error(exc)


@app.post("/views/capacity")
def views_capacity(req: CapacityViewRequest):
    try:
        history = parse_capacity_history(req.text)
        cfg = normalize_config(req.config.model_dump())
        return _json(
            compute_capacity_view(
                history,
                cfg,
                plf_pct=req.plf_pct,
                installed=req.installed,
                start_month=req.start_month,
                end_month=req.end_month,
                include_chart=req.include_chart,
            )
        )
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("views_capacity failed")
        return _error(exc)


@app.get("/capacity/view")
def capacity_view(
    range_days: int = Query(default=730),
    from_date: Optional[str] = Query(default=None),
    to_date: Optional[str] = Query(default=None),
    start_month: Optional[str] = Query(default=None),
    end_month: Optional[str] = Query(default=None),
    include_chart: bool = Query(default=False),
):
    try:
        data_dir = get_settings().data_dir
        if data_dir is None:
            return _error(FileNotFoundError("POWERDASH_DATA_DIR is not configured"), 404)
        path = data_dir / CAPACITY_CSV_FILE
        if not path.exists():
            return _error(FileNotFoundError(f"{path.name} not found in data directory"), 404)

        history = parse_capacity_history(path.read_text(encoding="utf-8-sig"))
        raw = AggregationConfigModel(range_days=range_days, from_date=from_date, to_date=to_date).model_dump()
        return _json(
            compute_capacity_view(
                history,
                normalize_config(raw),
                start_month=start_month,
                end_month=end_month,
                include_chart=include_chart,
            )
        )
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("capacity_view failed")
        return _error(exc)
