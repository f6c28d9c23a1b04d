"""
Row model selection

Small result sets are loaded whole and paged in the browser; larger ones are
paged by the server; window requests and very large sets use infinite scroll.
"""
from typing import Any, Dict, Optional

from gridportal.config import settings

ROW_MODEL_CLIENT = "clientSide"
ROW_MODEL_SERVER = "serverSide"
ROW_MODEL_INFINITE = "infinite"


def choose_row_model(total_count: int, windowed: bool = False,
                     pagination_threshold: Optional[int] = None,
                     infinite_threshold: Optional[int] = None) -> str:
    pagination_threshold = settings.PAGINATION_THRESHOLD if pagination_threshold is None else pagination_threshold
    infinite_threshold = settings.INFINITE_SCROLL_THRESHOLD if infinite_threshold is None else infinite_threshold

    if total_count < pagination_threshold:
        return ROW_MODEL_CLIENT
    if windowed or total_count >= infinite_threshold:
        return ROW_MODEL_INFINITE
    return ROW_MODEL_SERVER


def build_grid_metadata(total_count: int, windowed: bool, procedure_name: str,
                        display_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "procedureName": procedure_name,
        "displayName": display_name,
        "rowModelType": choose_row_model(total_count, windowed),
        "paginationThreshold": settings.PAGINATION_THRESHOLD,
        "infiniteScrollBatchSize": settings.INFINITE_SCROLL_BATCH_SIZE,
    }
