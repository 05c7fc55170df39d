"""
API v1 Router Module - Child Face Pipeline

All v1 endpoints are prefixed with /api/v1/

Pipeline endpoints:
- /api/v1/child       - synthesis stage
- /api/v1/codeformer  - restoration stage
- /api/v1/flux        - stylization stage
- /api/v1/pipeline    - all stages in one call

Supporting endpoints:
- /api/v1/metrics     - Prometheus metrics
"""

from fastapi import APIRouter

from src.api.v1.pipeline import router as pipeline_router
from src.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(pipeline_router, tags=["pipeline"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
