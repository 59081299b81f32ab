"""Credit Small-Amount Merge Service - Main Application."""

from fastapi import FastAPI

import credit_merge.models  # noqa: F401  (registers tables on Base.metadata)
from credit_merge.api.routes import audit, merge
from credit_merge.core.config import settings
from credit_merge.core.database import Base, engine
from credit_merge.core.logging import setup_logging

# Configure logging before anything else
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Merge",
        "description": (
            "Merge an account's small credit records into consolidated "
            "transactions, inspect small-amount statistics and merge potential, "
            "and submit batch merges as background jobs."
        ),
    },
    {
        "name": "Audit",
        "description": (
            "Query merge operations and statistics snapshots with filtering "
            "(account, strategy, status, date range) and summary totals."
        ),
    },
]


app = FastAPI(
    title="Credit Small-Amount Merge Service",
    description=(
        "## Small Credit Record Consolidation API\n\n"
        "Accounts accumulate many tiny credit grants; every one of them costs a "
        "consumption-log row when spent.  This service folds an account's small, "
        "untouched records into one consolidated record per expiry window, "
        "keeping the balance unchanged and leaving a full audit trail.\n\n"
        "### Time-window strategies\n"
        "| Strategy | Window key | Example |\n"
        "|----------|-----------|---------|\n"
        "| **day** | `YYYY-MM-DD` | `2024-01-15` |\n"
        "| **week** | `YYYY-Www` | `2024-W03` |\n"
        "| **month** | `YYYY-MM` | `2024-01` |\n"
        "| **all** | `all` | `all` |\n\n"
        "Records without expiry always merge together as `no_expiry`.\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Preview what a merge would do\n"
        "curl '/api/v1/merge/accounts/<id>/stats?threshold=5&strategy=month'\n\n"
        "# 2. Dry run (recorded, changes nothing)\n"
        'curl -X POST /api/v1/merge/run -H "Content-Type: application/json" '
        '-d \'{"account_id":"<id>","dry_run":true}\'\n\n'
        "# 3. Merge for real\n"
        'curl -X POST /api/v1/merge/run -H "Content-Type: application/json" '
        '-d \'{"account_id":"<id>","min_amount":5,"strategy":"month"}\'\n\n'
        "# 4. Review the audit trail\n"
        "curl '/api/v1/operations?account_id=<id>'\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    license_info={
        "name": "MIT",
    },
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(merge.router, prefix="/api/v1/merge", tags=["Merge"])
app.include_router(audit.router, prefix="/api/v1", tags=["Audit"])

logger.info("Credit merge API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    Useful for load balancers and monitoring systems.
    """
    return {"status": "healthy", "service": "credit-merge"}
