#!/usr/bin/env python3
"""
Cloud BPA - Analysis Core Server

Exposes the two analysis entry points over HTTP:
- Infrastructure Parser: CloudFormation / Terraform / CDK / live scan / ZIP -> ResourceGraph
- Differential Analyzer: two stored scans -> what changed and whether risk went up

Runs on 0.0.0.0:3000 by default.
"""

import uvicorn
from typing import Any, Dict, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cloud_bpa.config import Config
from cloud_bpa.errors import AuthorizationError, NotFoundError, ParseError, ValidationError
from cloud_bpa.infra_parser import parse_infrastructure_file
from cloud_bpa.logging_config import get_component_logger, setup_logging
from cloud_bpa.models import AnalysisRegistration, DifferentialAnalysisRequest, RequestContext, ScanRegistration
from cloud_bpa.service import DifferentialAnalysisService

logger = get_component_logger("api")

_ERROR_STATUS = (
    (ParseError, 400),
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
)


def request_context(
    x_tenant_id: Optional[str] = Header(None),
    x_user_role: str = Header("Analyst"),
    x_user_id: Optional[str] = Header(None),
    x_project_ids: Optional[str] = Header(None),
) -> RequestContext:
    """Caller identity from the headers set by the upstream authorizer."""
    project_ids = [p.strip() for p in (x_project_ids or "").split(",") if p.strip()]
    return RequestContext(tenant_id=x_tenant_id, role=x_user_role, user_id=x_user_id, project_ids=project_ids)


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def create_app(config: Optional[Config] = None,
               service: Optional[DifferentialAnalysisService] = None) -> FastAPI:
    """Build the FastAPI application around one configuration and one service instance."""
    config = config or Config()
    config.validate()
    service = service or DifferentialAnalysisService(config=config)
    zip_limits = config.zip_limits()

    app = FastAPI(
        title="Cloud BPA - Analysis Core",
        description="Infrastructure parsing and differential scan analysis",
        version="1.0.0"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    for error_type, status_code in _ERROR_STATUS:
        def handler(request: Request, exc: Exception, status_code: int = status_code) -> JSONResponse:
            logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})
        app.add_exception_handler(error_type, handler)

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "cloud-bpa",
            "runtime_mode": config.runtime_mode,
            "region": config.aws_region,
        }

    @app.post("/api/parse")
    async def parse_file(
        request: Request,
        file_name: str = Query(..., alias="fileName"),
        analysis_type: Optional[str] = Query(None, alias="analysisType"),
    ):
        """Parse the raw request body as one infrastructure file or ZIP archive."""
        data = await request.body()
        graph = await run_in_threadpool(parse_infrastructure_file, data, file_name, analysis_type, zip_limits)
        return _dump(graph)

    @app.post("/api/scans")
    async def register_scan(registration: ScanRegistration, context: RequestContext = Depends(request_context)):
        """Store a completed scan snapshot for later comparison."""
        scan = service.register_scan(context, registration)
        return {"message": "Scan registered", "scanId": scan.scan_id}

    @app.post("/api/scans/from-analysis")
    async def register_analysis(registration: AnalysisRegistration,
                                context: RequestContext = Depends(request_context)):
        """Build a scan snapshot from a parsed graph plus findings and store it."""
        scan = service.register_analysis(context, registration)
        return {"message": "Scan registered", "scanId": scan.scan_id, "scan": _dump(scan)}

    @app.post("/api/differential")
    async def start_differential(body: DifferentialAnalysisRequest,
                                 context: RequestContext = Depends(request_context)):
        """Compare two stored scans and persist the result."""
        result = service.start(context, body)
        return {"message": "Differential analysis completed", "analysisId": result.id, **_dump(result)}

    @app.get("/api/differential/history/{project_id}")
    async def differential_history(project_id: str, limit: int = Query(50, ge=0),
                                   context: RequestContext = Depends(request_context)):
        return _dump(service.history(context, project_id, limit))

    @app.get("/api/differential/scans/{project_id}")
    async def available_scans(project_id: str, context: RequestContext = Depends(request_context)):
        return {"scans": [_dump(scan) for scan in service.available_scans(context, project_id)]}

    @app.get("/api/differential/{result_id}")
    async def get_differential(result_id: str, context: RequestContext = Depends(request_context)):
        return _dump(service.get_result(context, result_id))

    return app


app = create_app()


def main():
    """Start the API server."""
    config = Config()
    setup_logging(config.log_level)

    print("=" * 80)
    print("Cloud BPA - Analysis Core")
    print("=" * 80)
    print(f"   Mode:   {config.runtime_mode}")
    print(f"   Region: {config.aws_region}")
    print(f"   Listen: http://{config.api_host}:{config.api_port}")
    print("=" * 80)
    print()

    uvicorn.run(
        app,
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()
