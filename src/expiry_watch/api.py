"""
HTTP interface for the expiry watch system.

Exposes the cron trigger for batch runs, the on-demand check paths and the
webhook test-send. The cron route is guarded by the cron secret; account
routes by the API token plus an ``X-Account-Id`` header naming the caller.
"""

import hmac
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .exceptions import (
    DuplicateDomainError,
    ExpiryWatchError,
    ForbiddenError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from .service import ExpiryWatchService


class DomainRequest(BaseModel):
    domain: str = Field(..., min_length=1, max_length=512)


class RecheckRequest(BaseModel):
    domainId: str = Field(..., min_length=1, max_length=200)


class WebhookTestRequest(BaseModel):
    webhookUrl: str = Field(..., min_length=1, max_length=2000)


def _bearer_token(req: Request) -> str:
    raw = req.headers.get("authorization") or ""
    parts = raw.split(None, 1)
    if len(parts) != 2 or parts[0].strip().lower() != "bearer":
        return ""
    return parts[1].strip()


def _check_secret(req: Request, secret: str) -> None:
    token = _bearer_token(req)
    if not token or not secret or not hmac.compare_digest(token, secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_service(req: Request) -> ExpiryWatchService:
    service = getattr(req.app.state, "service", None)
    if not isinstance(service, ExpiryWatchService):
        raise RuntimeError("Expiry watch service not configured")
    return service


def require_cron(req: Request, service: ExpiryWatchService = Depends(get_service)) -> None:
    _check_secret(req, service.config.api.cron_secret)


def require_account(
    req: Request,
    x_account_id: Optional[str] = Header(default=None),
    service: ExpiryWatchService = Depends(get_service),
) -> str:
    _check_secret(req, service.config.api.api_token)
    account_id = (x_account_id or "").strip()
    if not account_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return account_id


_STATUS_BY_ERROR = (
    (QuotaExceededError, 403),
    (ValidationError, 400),
    (DuplicateDomainError, 409),
    (NotFoundError, 404),
    (ForbiddenError, 403),
)


def _error_response(error: ExpiryWatchError) -> JSONResponse:
    if isinstance(error, QuotaExceededError):
        return JSONResponse(
            status_code=403,
            content={
                "error": error.message,
                "code": error.code,
                "current": error.current,
                "limit": error.limit,
            },
        )
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return JSONResponse(status_code=status, content={"error": error.message, "code": error.code})
    return JSONResponse(status_code=500, content={"error": error.message, "code": error.code})


def create_app(service: ExpiryWatchService) -> FastAPI:
    app = FastAPI(title="expiry-watch")
    app.state.service = service

    @app.exception_handler(ExpiryWatchError)
    async def _handle_expiry_watch_error(_req: Request, exc: ExpiryWatchError) -> JSONResponse:
        return _error_response(exc)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/api/cron/check-all-domains", dependencies=[Depends(require_cron)])
    async def check_all_domains(svc: ExpiryWatchService = Depends(get_service)):
        result = await svc.run_batch()
        if not result.success:
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to fetch domains", "details": result.error, "log": result.log},
            )
        if result.checked == 0:
            return {"message": "No domains to check", "checked": 0, "alerts_sent": 0, "log": result.log}
        return result.to_dict()

    @app.post("/api/check-domain")
    async def check_domain(
        body: DomainRequest,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        result = await svc.checker.precheck(account_id, body.domain)
        return result.to_dict()

    @app.post("/api/domains")
    async def add_domain(
        body: DomainRequest,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        outcome = await svc.checker.add_domain(account_id, body.domain)
        return outcome.to_dict()

    @app.post("/api/recheck-domain")
    async def recheck_domain(
        body: RecheckRequest,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        outcome = await svc.checker.recheck(account_id, body.domainId)
        return outcome.to_dict()

    @app.get("/api/domains/{domain_id}/history")
    async def domain_history(
        domain_id: str,
        limit: int = 30,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        records = await svc.checker.get_history(account_id, domain_id, max(1, min(limit, 365)))
        return {
            "history": [
                {
                    "id": r.id,
                    "ssl_status": r.cert_status.value,
                    "domain_status": r.registration_status.value,
                    "ssl_expiry_date": r.cert_expiry.isoformat() if r.cert_expiry else None,
                    "domain_expiry_date": r.registration_expiry.isoformat() if r.registration_expiry else None,
                    "checked_at": r.checked_at.isoformat(),
                }
                for r in records
            ]
        }

    @app.delete("/api/domains/{domain_id}")
    async def delete_domain(
        domain_id: str,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        await svc.checker.delete_domain(account_id, domain_id)
        return {"success": True}

    @app.post("/api/domains/{domain_id}/public-token")
    async def create_public_token(
        domain_id: str,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        token = await svc.checker.create_public_token(account_id, domain_id)
        return {"token": token}

    @app.delete("/api/domains/{domain_id}/public-token")
    async def revoke_public_token(
        domain_id: str,
        account_id: str = Depends(require_account),
        svc: ExpiryWatchService = Depends(get_service),
    ) -> dict:
        await svc.checker.revoke_public_token(account_id, domain_id)
        return {"success": True}

    @app.get("/api/status/{token}")
    async def public_status(token: str, svc: ExpiryWatchService = Depends(get_service)) -> dict:
        domain = await svc.checker.get_by_public_token(token)
        data = domain.to_dict()
        for private in ("id", "account_id", "public_token"):
            data.pop(private, None)
        return data

    @app.post("/api/webhook/test", dependencies=[Depends(require_account)])
    async def webhook_test(body: WebhookTestRequest, svc: ExpiryWatchService = Depends(get_service)):
        result = await svc.send_test_webhook(body.webhookUrl)
        if not result.success:
            return JSONResponse(status_code=502, content={"error": result.error or "Webhook test failed"})
        return {"success": True}

    return app
