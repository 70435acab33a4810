"""
FastAPI application — REST API for new-features notices.

Endpoints:
  GET  /newfeatures          — Notice of new features for the current user
  GET  /newfeatures/pending  — Module versions not yet acknowledged
  POST /newfeatures/seen     — Mark new features as seen
  POST /newfeatures/unseen   — Show a module's newest features again
  GET  /health               — Health check

The host application identifies the viewer with the X-Remote-User header and
their access tier with X-Viewer-Role (master, reseller, domain or owner).
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal

import psycopg2
from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, Header, HTTPException

import config
from features.newfeatures import (
    FeatureStore,
    FileLedger,
    ModuleRegistry,
    NoveltyResolver,
    UnknownModuleError,
    ViewerRole,
    build_notice,
)
from features.newfeatures import db as newfeatures_db
from features.newfeatures.hosts import HostCapabilities, ServerManagerHost, VirtualServerHost
from features.newfeatures.ladder import parse_version
from features.newfeatures.models import ManagedServer, VirtualDomain
from models.schemas import (
    AcknowledgedResponse,
    NoticeOut,
    NoticeResponse,
    PendingResponse,
    PendingVersion,
    SeenRequest,
    UnseenRequest,
)

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


@dataclass
class Services:
    registry: ModuleRegistry
    resolver: NoveltyResolver


_services: Services | None = None
_use_db = False


def build_services(use_db: bool = False) -> Services:
    registry = ModuleRegistry(
        config.MODULES_ROOT, config.CORE_MODULE, config.PLUGINS, config.AUX_MODULES,
    )
    ladder = registry.ladder()
    store = FeatureStore(config.CORE_MODULE, config.NEWFEATURES_DIRS, config.MODULES_ROOT)
    if use_db:
        ledger = newfeatures_db.PostgresLedger(ladder)
    else:
        ledger = FileLedger(config.SEEN_DIR, ladder)
    resolver = NoveltyResolver(
        store, ledger, ladder, allowed_roles=config.SHOW_NF, webprefix=config.WEBPREFIX,
    )
    return Services(registry=registry, resolver=resolver)


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(_use_db)
    return _services


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _use_db
    if config.DATABASE_URL:
        try:
            newfeatures_db.init_db()
            _use_db = True
            log.info("Postgres database initialized")
        except Exception as e:
            log.warning("Could not connect to Postgres: %s (using per-user files)", e)
    yield


app = FastAPI(
    title="New Features Notifier",
    description="Tells administrators what is new in the control panel and its plugins",
    version="1.0.0",
    lifespan=lifespan,
)


# ── Viewer context ────────────────────────────────────────────────────

def load_inventory() -> dict:
    """Domains and managed servers known to the host, from INVENTORY_FILE."""
    if not config.INVENTORY_FILE.is_file():
        return {"domains": [], "servers": []}
    with open(config.INVENTORY_FILE) as f:
        data = json.load(f)
    return {"domains": data.get("domains", []), "servers": data.get("servers", [])}


def _split_known(raw: dict, known: tuple[str, ...]) -> tuple[dict, dict]:
    main = {k: str(v) for k, v in raw.items() if k in known}
    extra = {k: v for k, v in raw.items() if k not in known}
    return main, extra


def get_host(
    x_remote_user: str = Header(...),
    x_viewer_role: str | None = Header(None),
) -> HostCapabilities:
    try:
        role = ViewerRole.parse(x_viewer_role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    inventory = load_inventory()
    if config.HOST_FLAVOR == "server-manager":
        servers = []
        for raw in inventory["servers"]:
            main, extra = _split_known(raw, ("id", "host", "manager", "status"))
            servers.append(ManagedServer(extra=extra, **main))
        return ServerManagerHost(
            x_remote_user,
            access={"owner": role is ViewerRole.TENANT_OWNER},
            servers=servers,
            module_name=config.CORE_MODULE,
        )

    domains = []
    for raw in inventory["domains"]:
        main, extra = _split_known(raw, ("id", "dom", "user", "owner"))
        domains.append(VirtualDomain(extra=extra, **main))
    return VirtualServerHost(
        x_remote_user,
        is_master=role is ViewerRole.PRIMARY_ADMIN,
        is_reseller=role is ViewerRole.RESELLER_ADMIN,
        domains=domains,
        module_name=config.CORE_MODULE,
    )


def _find_target(host: HostCapabilities, target_id: str | None):
    if not target_id:
        return None
    entities = host.servers if isinstance(host, ServerManagerHost) else host.domains
    for entity in entities:
        if entity.id == target_id:
            return entity
    raise HTTPException(status_code=404, detail=f"Target not found: {target_id}")


# ── Health ────────────────────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "newfeatures-notifier",
        "ledger": "postgres" if _use_db else "files",
    }


# ── New features ──────────────────────────────────────────────────────

@app.get("/newfeatures", response_model=NoticeResponse)
def get_new_features(
    target: str | None = None,
    host: HostCapabilities = Depends(get_host),
    services: Services = Depends(get_services),
):
    """The new-features notice for the viewer, or null if nothing is new."""
    entity = _find_target(host, target)
    host_version = parse_version(config.HOST_VERSION)
    try:
        notice = build_notice(
            services.resolver,
            host.user,
            services.registry.interested_modules(),
            host,
            host_version,
            entity,
            core_label=config.CORE_MODULE_LABEL,
            install_times_file=config.INSTALL_TIMES_FILE,
        )
    except UnknownModuleError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except psycopg2.Error as e:
        log.warning("Could not read acknowledged features for %s: %s", host.user, e)
        notice = None
    return NoticeResponse(notice=NoticeOut.from_notice(notice) if notice else None)


@app.get("/newfeatures/pending", response_model=PendingResponse)
def get_pending(
    host: HostCapabilities = Depends(get_host),
    services: Services = Depends(get_services),
):
    """Module versions whose features the viewer has not acknowledged."""
    try:
        pending = services.resolver.pending_notifications(
            host.user, services.registry.interested_modules(),
        )
    except UnknownModuleError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (OSError, psycopg2.Error) as e:
        log.warning("Could not read acknowledged features for %s: %s", host.user, e)
        pending = []
    return PendingResponse(
        user=host.user,
        pending=[PendingVersion(module=m, version=str(v)) for m, v in pending],
    )


@app.post("/newfeatures/seen", response_model=AcknowledgedResponse)
def mark_seen(
    req: SeenRequest | None = Body(None),
    host: HostCapabilities = Depends(get_host),
    services: Services = Depends(get_services),
):
    """Mark one module (or, with no body, every module) as seen."""
    resolver = services.resolver
    modules = services.registry.interested_modules()
    try:
        if req and req.module:
            resolver.ladder.places_for(req.module)
            version = req.version
            if version is None:
                current = next((m for m in modules if m.name == req.module), None)
                if current is None:
                    raise HTTPException(status_code=404, detail=f"Module not installed: {req.module}")
                version = current.version
            resolver.ledger.acknowledge(host.user, req.module, version)
        else:
            resolver.acknowledge_all(host.user, modules)
        acknowledged = resolver.ledger.get_acknowledged(host.user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (OSError, psycopg2.Error) as e:
        raise HTTPException(status_code=500, detail=f"Could not save seen features: {e}")
    return _acknowledged(host.user, acknowledged)


@app.post("/newfeatures/unseen", response_model=AcknowledgedResponse)
def mark_unseen(
    req: UnseenRequest,
    host: HostCapabilities = Depends(get_host),
    services: Services = Depends(get_services),
):
    """Step a module's acknowledged version back, so its newest features show again."""
    ledger = services.resolver.ledger
    try:
        services.resolver.ladder.places_for(req.module)
        ledger.unacknowledge(host.user, req.module)
        acknowledged = ledger.get_acknowledged(host.user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (OSError, psycopg2.Error) as e:
        raise HTTPException(status_code=500, detail=f"Could not save seen features: {e}")
    return _acknowledged(host.user, acknowledged)


def _acknowledged(user: str, acknowledged: dict[str, Decimal]) -> AcknowledgedResponse:
    return AcknowledgedResponse(user=user, acknowledged={m: str(v) for m, v in acknowledged.items()})
