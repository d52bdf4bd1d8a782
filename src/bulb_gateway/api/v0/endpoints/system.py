"""System and transparency endpoints for the gateway."""

from fastapi import APIRouter

from bulb_gateway.api.v0.dependencies import (
    DatabaseRelayDep,
    SettingsDep,
    StagingDep,
    StorageRelayDep,
)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config(
    settings: SettingsDep,
    staging: StagingDep,
    storage: StorageRelayDep,
    database: DatabaseRelayDep,
) -> dict[str, object]:
    """Return a sanitized snapshot of runtime configuration and relay metrics.

    Args:
        settings: Startup settings
        staging: Staging store
        storage: IPFS relay
        database: OrbitDB relay

    Returns:
        Dictionary containing public configuration, staging readiness and
        per-backend call metrics
    """
    return {
        **settings.public_config,
        "staging": {"ready": staging.ready},
        "relays": {
            storage.name: storage.get_metrics(),
            database.name: database.get_metrics(),
        },
    }
