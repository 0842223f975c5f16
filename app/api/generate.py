"""
api/generate.py
Synchronous generation trigger: POST {"batchId": ...} and get the run summary.
"""
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.deps import Services, get_services
from app.core.exceptions import CertificateServiceError
from app.models.batch_model import GenerateRequest
from app.utils.helpers import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/functions", tags=["Generation"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def error_response(message: str) -> JSONResponse:
    """Every failure of this endpoint is a 500 with an {error} body."""
    return JSONResponse(status_code=500, content={"error": message}, headers=CORS_HEADERS)


@router.options("/generate-certificates")
async def generate_certificates_preflight():
    return Response(content="ok", headers=CORS_HEADERS)


@router.post("/generate-certificates")
async def generate_certificates(request: Request, services: Services = Depends(get_services)):
    """
    Run generation for a batch and wait for it to finish.

    Returns {success, processed, total, batchId}, or 500 {error}. The body is
    validated here rather than by FastAPI so that a bad request gets the same
    error shape.
    """
    try:
        body = GenerateRequest.model_validate(await request.json())
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        message = "batchId is required" if isinstance(e, ValidationError) else f"Invalid JSON body: {e}"
        logger.warning(f"Rejected generate-certificates request: {message}")
        return error_response(message)

    try:
        result = await services.orchestrator.run_batch(body.batch_id)
    except CertificateServiceError as e:
        logger.error(f"Error in generate-certificates for {body.batch_id}: [{e.code}] {e.message}")
        return error_response(e.message)
    except Exception as e:
        logger.error(f"Error in generate-certificates for {body.batch_id}: {e}", exc_info=True)
        return error_response(str(e))
    return JSONResponse(content=result.to_response(), headers=CORS_HEADERS)
