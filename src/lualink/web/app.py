"""FastAPI web application for LuaLink."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import ORJSONResponse

from lualink import __version__
from lualink.config import Settings, load_settings
from lualink.errors import InterfaceDiscoveryError, ValidationError
from lualink.agent.arp import read_arp_table
from lualink.agent.broadcaster import EventBroadcaster
from lualink.agent.delivery import deliver_payload, validate_target
from lualink.agent.payloads import PayloadStore
from lualink.agent.scanner import SubnetScanner
from lualink.web.realtime import router as realtime_router

logger = logging.getLogger("lualink.web")

router = APIRouter()


@router.get("/")
async def index():
    """Service summary."""
    return {
        "name": "LuaLink",
        "version": __version__,
        "endpoints": ["/scan-network", "/send-lua", "/events", "/api/payloads"],
    }


@router.get("/scan-network")
async def scan_network(request: Request, interface: Optional[str] = None):
    """Sweep the local /24 for devices listening on the loader port."""
    scanner: SubnetScanner = request.app.state.scanner
    try:
        result = await scanner.discover(interface)
    except InterfaceDiscoveryError:
        raise
    except Exception as e:
        logger.error(f"Network scan error: {e}")
        return ORJSONResponse(status_code=500, content={"error": "Failed to scan network"})
    return result.to_dict()


@router.post("/send-lua")
async def send_lua(
    request: Request,
    ip_address: Optional[str] = Form(None, alias="ipAddress"),
    port: Optional[str] = Form(None),
    file_name: Optional[str] = Form(None, alias="fileName"),
    file: Optional[UploadFile] = File(None),
):
    """Deliver an uploaded or pre-staged payload to a device."""
    state = request.app.state
    logger.info(f"Received send request: ip={ip_address} port={port} "
                f"file={file.filename if file else None} predefined={file_name}")

    # Target is checked before anything touches the disk or the network
    target_ip, target_port = validate_target(ip_address, port)

    store: PayloadStore = state.store
    if file is not None and file.filename:
        source = await store.stage_upload(file.filename, await file.read())
    elif file_name:
        source = store.predefined(file_name)
    else:
        raise ValidationError("No file specified (neither uploaded nor predefined)")

    result = await deliver_payload(
        store,
        source,
        target_ip,
        target_port,
        broadcaster=state.broadcaster,
        settings=state.settings,
    )
    return ORJSONResponse(status_code=200 if result.success else 500, content=result.to_dict())


@router.get("/api/payloads")
async def list_payloads(request: Request):
    """Names of the pre-staged payloads."""
    return {"payloads": request.app.state.store.available()}


@router.get("/api/interfaces")
async def list_interfaces(request: Request):
    """Local IPv4 interfaces."""
    interfaces = request.app.state.scanner.list_interfaces()
    return {"interfaces": [iface.to_dict() for iface in interfaces]}


@router.get("/api/arp")
async def arp_table():
    """Entries of the OS ARP cache."""
    entries = await read_arp_table()
    return {"devices": [entry.to_dict() for entry in entries]}


@router.get("/api/settings")
async def get_settings(request: Request):
    """Current settings."""
    return request.app.state.settings.model_dump(mode="json")


@router.get("/api/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "observers": request.app.state.broadcaster.subscriber_count,
    }


async def validation_error_handler(request: Request, exc: ValidationError):
    message = str(exc)
    logger.warning(f"Rejected request: {message}")
    return ORJSONResponse(
        status_code=400,
        content={"success": False, "error": message, "logs": [message]},
    )


async def interface_error_handler(request: Request, exc: InterfaceDiscoveryError):
    logger.error(str(exc))
    return ORJSONResponse(status_code=500, content={"error": str(exc)})


def create_app(
    settings: Settings | None = None,
    scanner: SubnetScanner | None = None,
    broadcaster: EventBroadcaster | None = None,
    store: PayloadStore | None = None,
) -> FastAPI:
    """Build the application with its collaborators."""
    settings = settings or load_settings()
    broadcaster = broadcaster or EventBroadcaster()
    scanner = scanner or SubnetScanner(
        broadcaster=broadcaster,
        primary_port=settings.primary_port,
        secondary_port=settings.secondary_port,
        probe_timeout=settings.probe_timeout,
        batch_size=settings.scan_batch_size,
    )
    store = store or PayloadStore(settings.payloads_dir, settings.uploads_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        store.uploads_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"LuaLink running on http://{settings.host}:{settings.port}")
        logger.info(f"Send endpoint at http://localhost:{settings.port}/send-lua")
        yield
        logger.info("LuaLink stopped")

    app = FastAPI(
        title="LuaLink",
        description="Local network payload sender",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.scanner = scanner
    app.state.store = store

    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(InterfaceDiscoveryError, interface_error_handler)

    app.include_router(router)
    app.include_router(realtime_router)
    return app


app = create_app()
