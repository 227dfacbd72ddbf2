import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.logging_config import configure_logging
from app.identity.age_gate import AgeGate, AgeGateConfig
from app.identity.api_models import (
    AgeVerificationRequest,
    GetCertificatesRequest,
    ResolveDIDRequest,
    VerifyCertificateRequest,
    VerifyCertificateResponse,
    WellKnownAuthRequest,
    to_error_detail,
)
from app.identity.authentication import UnifiedAuthService
from app.identity.credential import verify_credential
from app.identity.did import DIDRegistry, HTTPDIDResolver
from app.identity.disclosure import create_verifiable_certificate, decrypt_view
from app.identity.exceptions import IdentityError, InvalidDIDFormat, MalformedCertificate
from app.identity.models import Certificate
from app.identity.session import (
    CertificateReceiptChannel,
    CertificateReceived,
    SessionRegistry,
)
from app.identity.validator import validate_structure
from app.identity.vc_data import resolve_vc_data
from app.identity.wallet import HTTPWalletClient, WalletClient

configure_logging()
log = logging.getLogger("agegate")

AUTH_IDENTITY_HEADER = "x-bsv-auth-identity-key"


def get_wallet() -> WalletClient:
    from app.core.config import WALLET_URL, WALLET_TIMEOUT_SECONDS
    return HTTPWalletClient(WALLET_URL, WALLET_TIMEOUT_SECONDS, originator="agegate")


def get_did_resolver() -> HTTPDIDResolver:
    from app.core.config import DID_RESOLVER_URL, DID_RESOLVER_TIMEOUT_SECONDS, DID_TOPIC
    return HTTPDIDResolver(DID_RESOLVER_URL, DID_RESOLVER_TIMEOUT_SECONDS, DID_TOPIC)


def _start_state(app: FastAPI) -> None:
    from app.core.config import (
        DID_SYNTHESIZE_DOCUMENTS,
        SESSION_MAX_ENTRIES,
        SESSION_TTL_SECONDS,
    )
    app.state.did_registry = DIDRegistry(synthesize_missing=DID_SYNTHESIZE_DOCUMENTS)
    app.state.sessions = SessionRegistry(SESSION_TTL_SECONDS, SESSION_MAX_ENTRIES)
    app.state.receipts = CertificateReceiptChannel(app.state.sessions)
    app.state.auth = UnifiedAuthService(fallback_store=app.state.sessions)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _start_state(app)
    consumer = asyncio.create_task(app.state.receipts.run())
    log.info("Certificate receipt consumer started")
    try:
        yield
    finally:
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Age Gate", version="0.1.0", lifespan=lifespan)
_start_state(app)


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.middleware("http")
async def req_log(request: Request, call_next):
    start = time.time()
    route = request.url.path
    remote = request.client.host if request.client else "-"
    resp = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    log.info(f"request_complete status={resp.status_code} duration_ms={duration_ms}",
             extra={"request_id": "-", "route": route, "remote_addr": remote})
    return resp


@app.get("/version")
def version():
    # GIT_SHA is injected at deploy time
    return {"git_sha": os.getenv("GIT_SHA", "unknown")}


@app.get("/admin")
def admin():
    """Return all configurable items for operator visibility.

    Gated by ADMIN_ENDPOINT_ENABLED (default: True for dev, False for prod).
    """
    from app.core.config import (
        ADMIN_ENDPOINT_ENABLED,
        CERTIFICATE_LIST_LIMIT,
        DEFAULT_FIELDS_TO_REVEAL,
        DID_LINKED_CERTIFICATE_TYPES,
        DID_RESOLVER_URL,
        DID_SYNTHESIZE_DOCUMENTS,
        DID_TOPIC,
        DISCLOSURE_FIELD,
        IDENTITY_CERTIFICATE_TYPE,
        MAX_PLAUSIBLE_AGE,
        MIN_PLAUSIBLE_AGE,
        MINIMUM_AGE,
        ONBOARDING_URL,
        SESSION_MAX_ENTRIES,
        SESSION_TTL_SECONDS,
        TRUSTED_ISSUER_PUBLIC_KEY,
        VERIFICATION_TIMEOUT_SECONDS,
        WALLET_URL,
    )

    if not ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    return {
        "normative": {
            "min_plausible_age": MIN_PLAUSIBLE_AGE,
            "max_plausible_age": MAX_PLAUSIBLE_AGE,
        },
        "configurable": {
            "trusted_issuer_public_key": TRUSTED_ISSUER_PUBLIC_KEY,
            "identity_certificate_type": IDENTITY_CERTIFICATE_TYPE,
            "did_linked_certificate_types": list(DID_LINKED_CERTIFICATE_TYPES),
            "minimum_age": MINIMUM_AGE,
            "disclosure_field": DISCLOSURE_FIELD,
            "certificate_list_limit": CERTIFICATE_LIST_LIMIT,
            "default_fields_to_reveal": list(DEFAULT_FIELDS_TO_REVEAL),
        },
        "operational": {
            "wallet_url": WALLET_URL,
            "did_resolver_url": DID_RESOLVER_URL,
            "did_topic": DID_TOPIC,
            "did_synthesize_documents": DID_SYNTHESIZE_DOCUMENTS,
            "verification_timeout_seconds": VERIFICATION_TIMEOUT_SECONDS,
            "onboarding_url": ONBOARDING_URL,
        },
        "sessions": {
            "ttl_seconds": SESSION_TTL_SECONDS,
            "max_entries": SESSION_MAX_ENTRIES,
            "active": len(app.state.sessions),
        },
        "environment": {
            "log_level": logging.getLogger().getEffectiveLevel(),
            "log_level_name": logging.getLevelName(logging.getLogger().getEffectiveLevel()),
        },
    }


@app.post("/api/resolve-did")
async def resolve_did(req: ResolveDIDRequest):
    if not req.did:
        return JSONResponse(status_code=400, content={"error": "DID is required"})

    try:
        document = app.state.did_registry.resolve(req.did)
    except InvalidDIDFormat:
        return JSONResponse(status_code=400, content={"error": "Invalid DID format"})
    except Exception:
        log.exception("DID resolution failed")
        return JSONResponse(status_code=500, content={"error": "Failed to resolve DID"})

    if document is None:
        return JSONResponse(status_code=404, content={"error": "DID not found"})

    log.info(f"Resolved DID {req.did}")
    return {"didDocument": document, "resolved": True}


@app.post("/api/verify-certificate")
async def verify_certificate(req: VerifyCertificateRequest):
    if not req.certificate:
        return JSONResponse(status_code=400, content={"error": "Certificate is required"})

    try:
        result = await verify_credential(req.certificate, did_resolver=get_did_resolver())
    except Exception as e:
        log.exception("Certificate verification failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Verification failed", "detail": to_error_detail(e).model_dump()},
        )

    resp = VerifyCertificateResponse(
        valid=result.valid,
        format=result.format.value,
        claims=result.claims.to_dict() if result.claims else None,
        error=result.error,
    )
    return JSONResponse(resp.model_dump(exclude_none=True))


@app.post("/api/age-verification")
async def age_verification(req: AgeVerificationRequest):
    gate = AgeGate(AgeGateConfig.from_settings(
        minimum_age=req.minimum_age,
        disclosure_field=req.disclosure_field,
    ))
    verdict = await gate.run(get_wallet())
    return JSONResponse(verdict.to_dict())


@app.post("/api/get-certificates")
async def get_certificates(req: GetCertificatesRequest):
    from app.core.config import (
        DEFAULT_FIELDS_TO_REVEAL,
        IDENTITY_CERTIFICATE_TYPE,
        TRUSTED_ISSUER_PUBLIC_KEY,
    )

    fields_to_reveal = req.fields_to_reveal or list(DEFAULT_FIELDS_TO_REVEAL)
    wallet = get_wallet()

    try:
        listing = await wallet.list_certificates(
            types=[IDENTITY_CERTIFICATE_TYPE],
            certifiers=[TRUSTED_ISSUER_PUBLIC_KEY],
            limit=1,
        )
        if not listing.certificates:
            return JSONResponse(status_code=404, content={"error": "No certificates found"})

        certificate = listing.certificates[0]
        verifier_public_key = await wallet.get_public_key(identity_key=True)
        view = await create_verifiable_certificate(
            wallet, certificate, verifier_public_key, fields_to_reveal
        )
    except Exception as e:
        log.error(f"Error fetching certificates: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch certificates"})

    response = {"certificateWithData": view.to_dict()}
    if {"isVC", "didRef"} <= set(view.fields):
        try:
            claims = await resolve_vc_data(wallet, await decrypt_view(wallet, view))
        except IdentityError as e:
            log.warning(f"Could not expand VC-enabled certificate: {e.message}")
            claims = None
        if claims is not None:
            response["claims"] = claims.to_dict()
    return response


@app.post("/.well-known/auth")
async def well_known_auth(req: WellKnownAuthRequest, request: Request):
    if not req.identity_key:
        return JSONResponse(status_code=401, content={"error": "Identity key is required"})

    for raw in req.certificates:
        try:
            certificate = Certificate.from_dict(raw)
        except MalformedCertificate:
            return JSONResponse(status_code=400, content={"error": "Invalid certificate structure"})
        if not validate_structure(certificate):
            return JSONResponse(status_code=400, content={"error": "Invalid certificate structure"})

    app.state.receipts.publish(CertificateReceived(
        sender_public_key=req.identity_key,
        certificates=list(req.certificates),
    ))
    log.info(f"Received {len(req.certificates)} certificates", extra={
        "route": "/.well-known/auth",
        "identity_key": req.identity_key[:16],
        "remote_addr": request.client.host if request.client else "-",
    })
    return {
        "status": "received",
        "identityKey": req.identity_key,
        "certificatesReceived": len(req.certificates),
    }


@app.post("/login")
async def login(request: Request):
    identity_key = request.headers.get(AUTH_IDENTITY_HEADER)
    if not identity_key:
        return JSONResponse(status_code=401, content={"error": "No certificate provided"})

    await app.state.receipts.drain()
    certificate = await app.state.sessions.find_certificate(
        identity_key, app.state.auth.certificate_type
    )
    if certificate is None:
        return JSONResponse(status_code=401, content={"error": "No certificate provided"})

    return {
        "success": True,
        "user": certificate.subject,
        "certificates": certificate.to_dict(),
    }
