"""FastAPI application for the Blood Bank service."""

from contextlib import aclosing, asynccontextmanager
from typing import Callable

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from bloodbank import __version__
from bloodbank.api.schemas import (
    BankResponse,
    BloodRequestBody,
    ContactRequest,
    DonationRequest,
    HealthResponse,
    MessageResponse,
    PageResponse,
    RequestStatusResponse,
    SessionResponse,
    SignInRequest,
    StateResponse,
    ViewRequest,
)
from bloodbank.api.sessions import (
    SESSION_COOKIE,
    ClientRegistry,
    client_id_from_request,
    get_client,
    get_registry,
    get_signed_in_client,
)
from bloodbank.config import configure_logging, get_settings
from bloodbank.core.client import LOGIN_FAILED, BloodBankClient
from bloodbank.core.errors import AuthError, ConfigError
from bloodbank.core.models import RequestStatus
from bloodbank.core.pages import get_page
from bloodbank.core.state import AppState, InitFailed, reduce
from bloodbank.db import get_store

logger = structlog.get_logger()


def _status_response(status: RequestStatus) -> RequestStatusResponse:
    return RequestStatusResponse(
        kind=status.kind,
        message=status.message,
        hospital=status.hospital,
        map_url=status.map_url,
    )


def _state_response(client_id: str, state: AppState) -> StateResponse:
    return StateResponse(
        client_id=client_id,
        view=state.view,
        loading=state.loading,
        synced=state.synced,
        session=(
            SessionResponse(uid=state.session.uid, is_anonymous=state.session.is_anonymous)
            if state.session
            else None
        ),
        banks=[
            BankResponse(
                id=bank.id,
                name=bank.name,
                location=bank.location,
                inventory=bank.inventory,
                total_units=sum(bank.inventory.values()),
            )
            for bank in state.banks
        ],
        request_status=_status_response(state.request_status),
        error=state.error,
        show_donate=state.show_donate,
        notice=state.notice,
    )


def default_registry_factory() -> ClientRegistry:
    """Validate configuration and build the registry for the configured backend.

    Raises:
        ConfigError: If backend configuration is missing
    """
    settings = get_settings()
    settings.validate_backend()
    return ClientRegistry(get_store(), settings.app)


def create_app(
    registry_factory: Callable[[], ClientRegistry] = default_registry_factory,
) -> FastAPI:
    """Build the API application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        app.state.registry = None
        app.state.init_state = None
        try:
            app.state.registry = registry_factory()
        except ConfigError as e:
            logger.error("configuration_invalid", error=str(e))
            app.state.init_state = reduce(AppState(), InitFailed())

        yield

        registry = app.state.registry
        if registry is not None:
            await registry.close_all()
            await registry.store.close()

    app = FastAPI(
        title="Blood Bank API",
        description="Hospital blood inventory browsing and withdrawal requests",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def block_on_config_error(request: Request, call_next):
        init_state = getattr(request.app.state, "init_state", None)
        if init_state is not None and request.url.path.startswith("/api/"):
            if request.url.path != "/api/health":
                return JSONResponse(status_code=503, content={"detail": init_state.error})
        return await call_next(request)

    @app.get("/api/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        """Health check with document store connectivity."""
        registry = getattr(request.app.state, "registry", None)
        if registry is None:
            return HealthResponse(
                status="misconfigured",
                version=__version__,
                backend=get_settings().app.backend,
                database="unavailable",
            )
        db_status = "connected" if await registry.store.health_check() else "disconnected"
        return HealthResponse(
            status="ok",
            version=__version__,
            backend=registry.app_settings.backend,
            database=db_status,
        )

    @app.post("/api/session", response_model=StateResponse)
    async def sign_in(
        body: SignInRequest,
        request: Request,
        response: Response,
        registry: ClientRegistry = Depends(get_registry),
    ) -> StateResponse:
        """Sign in and wait for the first inventory snapshot.

        Reuses the caller's client when the session cookie is still valid.
        """
        existing = registry.get(client_id_from_request(request))
        client = existing or await registry.create()
        try:
            await client.sign_in(body.token)
        except AuthError:
            if existing is None:
                await registry.remove(client.id)
            raise HTTPException(status_code=401, detail=LOGIN_FAILED)

        try:
            state = await client.store.wait_for(
                lambda s: s.signed_in and (s.synced or s.error is not None),
                timeout=registry.app_settings.snapshot_wait_seconds,
            )
        except TimeoutError:
            logger.warning("first_snapshot_timeout", client_id=client.id)
            state = client.state

        response.set_cookie(SESSION_COOKIE, client.id, httponly=True, samesite="lax")
        return _state_response(client.id, state)

    @app.delete("/api/session", response_model=MessageResponse)
    async def sign_out(
        response: Response,
        client: BloodBankClient = Depends(get_client),
        registry: ClientRegistry = Depends(get_registry),
    ) -> MessageResponse:
        """Sign out and drop the client."""
        await client.sign_out()
        await registry.remove(client.id)
        response.delete_cookie(SESSION_COOKIE)
        return MessageResponse(message="Signed out")

    @app.get("/api/state", response_model=StateResponse)
    async def get_state(client: BloodBankClient = Depends(get_client)) -> StateResponse:
        return _state_response(client.id, client.state)

    @app.get("/api/state/stream")
    async def stream_state(
        request: Request, client: BloodBankClient = Depends(get_client)
    ) -> StreamingResponse:
        """Server-sent events carrying every state replacement."""

        async def events():
            async with aclosing(client.store.changes()) as states:
                async for state in states:
                    if await request.is_disconnected():
                        break
                    payload = _state_response(client.id, state).model_dump_json()
                    yield f"data: {payload}\n\n"

        return StreamingResponse(events(), media_type="text/event-stream")

    @app.post("/api/view", response_model=StateResponse)
    async def change_view(
        body: ViewRequest, client: BloodBankClient = Depends(get_client)
    ) -> StateResponse:
        return _state_response(client.id, client.navigate(body.view))

    @app.get("/api/banks", response_model=list[BankResponse])
    async def list_banks(
        client: BloodBankClient = Depends(get_signed_in_client),
    ) -> list[BankResponse]:
        """Hospitals from the latest snapshot."""
        state = client.state
        if state.error is not None and not state.synced:
            raise HTTPException(status_code=503, detail=state.error)
        return _state_response(client.id, state).banks

    @app.post("/api/requests", response_model=RequestStatusResponse)
    async def submit_request(
        body: BloodRequestBody,
        client: BloodBankClient = Depends(get_signed_in_client),
    ) -> RequestStatusResponse:
        """Request units of one blood type from one hospital.

        Validation failures are reported in the body, not as HTTP errors.
        """
        status = await client.submit_request(
            body.blood_type,
            body.hospital,
            body.amount,
            requester_name=body.requester_name,
            requester_age=body.requester_age,
            requester_gender=body.requester_gender,
        )
        return _status_response(status)

    @app.post("/api/donate/open", response_model=StateResponse)
    async def open_donate(
        client: BloodBankClient = Depends(get_signed_in_client),
    ) -> StateResponse:
        return _state_response(client.id, client.open_donate())

    @app.post("/api/donations", response_model=MessageResponse)
    async def submit_donation(
        body: DonationRequest,
        client: BloodBankClient = Depends(get_signed_in_client),
    ) -> MessageResponse:
        message = client.submit_donation(
            name=body.name,
            weight_kg=body.weight_kg,
            age=body.age,
            medical_issues=body.medical_issues,
        )
        return MessageResponse(message=message)

    @app.post("/api/contact", response_model=MessageResponse)
    async def submit_contact(
        body: ContactRequest,
        client: BloodBankClient = Depends(get_signed_in_client),
    ) -> MessageResponse:
        return MessageResponse(
            message=client.submit_contact(body.name, body.email, body.message)
        )

    @app.get("/api/pages/{name}", response_model=PageResponse)
    async def get_static_page(name: str) -> PageResponse:
        page = get_page(name)
        if page is None:
            raise HTTPException(status_code=404, detail=f"Page not found: {name}")
        return PageResponse(
            name=name,
            title=page.title,
            paragraphs=list(page.paragraphs),
            features=list(page.features),
        )

    return app


app = create_app()
