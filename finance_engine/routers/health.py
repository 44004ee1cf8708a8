"""
Health Check Router
Liveness plus the status of the configured store, notifier and scheduler.
"""
from fastapi import APIRouter
from datetime import datetime
import logging

from botocore.exceptions import ClientError

from finance_engine.core.config import settings
from finance_engine.core.dependencies import get_alert_store, get_transaction_store
from finance_engine.utils.scheduler import get_scheduler_status

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.utcnow().isoformat()
    }


def _table_status(name: str, store) -> dict:
    table = getattr(store, "table", None)
    if table is None:
        return {"name": name, "status": "accessible", "backend": "memory"}
    try:
        table.scan(Limit=1)
        return {"name": name, "status": "accessible", "region": settings.DYNAMO_REGION}
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        logger.error(f"DynamoDB check failed for {name}: {str(e)}")
        return {"name": name, "status": "error", "error": f"{error_code}: {str(e)}"}
    except Exception as e:
        logger.error(f"DynamoDB check failed for {name}: {str(e)}")
        return {"name": name, "status": "error", "error": str(e)}


@router.get("/status")
async def services_status():
    """
    Status of the engine's collaborators:
    - alert-rule and transaction stores
    - notification sink
    - background scheduler
    """
    stores = {
        "alert_rules": _table_status(settings.DYNAMO_ALERT_RULES_TABLE, get_alert_store()),
        "transactions": _table_status(settings.DYNAMO_TRANSACTIONS_TABLE, get_transaction_store()),
    }
    store_status = {
        "backend": settings.STORE_BACKEND,
        "connected": all(t["status"] == "accessible" for t in stores.values()),
        "tables": stores,
    }

    status = {
        "timestamp": datetime.utcnow().isoformat(),
        "services": {
            "store": store_status,
            "notifier": {"backend": settings.NOTIFIER_BACKEND, "connected": True},
            "scheduler": get_scheduler_status(),
        },
    }
    status["overall_status"] = "healthy" if store_status["connected"] else "degraded"
    return status
