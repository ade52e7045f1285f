import asyncio
import logging
import threading
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import database
from actions import ActionValidationError, validate_actions
from confirmation import (
    EXPIRED_MESSAGE,
    AmbiguousMatchError,
    ConfirmationStore,
    gate_command,
    reap_expired,
)
from executor import add_task_list_listener, execute_actions, remove_task_list_listener
from models import CommandRequest, ConfirmRequest, Owner
from pipeline import understand_command
from suggestions import suggest_recurring

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

confirmation_store = ConfirmationStore()

# Bumped by the executor after every successful mutation; clients compare
# X-Task-List-Revision to know when their cached list is stale
task_list_revisions: dict[Owner, int] = {}
# Bumped from threadpool workers and read on the event loop
_revisions_lock = threading.Lock()


def bump_task_list_revision(owner: Owner):
    with _revisions_lock:
        task_list_revisions[owner] = task_list_revisions.get(owner, 0) + 1


def task_list_revision(owner: Owner) -> int:
    with _revisions_lock:
        return task_list_revisions.get(owner, 0)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    database.init_db()
    add_task_list_listener(bump_task_list_revision)
    reaper = asyncio.create_task(reap_expired(confirmation_store))
    yield
    # Shutdown
    reaper.cancel()
    with suppress(asyncio.CancelledError):
        await reaper
    remove_task_list_listener(bump_task_list_revision)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Task-List-Revision"],
)


def get_owner(
    x_user_id: Optional[str] = Header(None),
    x_guest_id: Optional[str] = Header(None),
) -> Owner:
    """The caller is already authenticated upstream; exactly one identity header is expected."""
    if bool(x_user_id) == bool(x_guest_id):
        raise HTTPException(status_code=401, detail="Exactly one of X-User-Id or X-Guest-Id is required")
    if x_user_id:
        return Owner(id=x_user_id)
    return Owner(id=x_guest_id, is_guest=True)


def get_confirmations() -> ConfirmationStore:
    return confirmation_store


def _unexpected_error(what: str) -> JSONResponse:
    logger.exception("Unexpected error while %s", what)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "An unexpected error occurred"},
    )


@app.get("/tasks")
def get_tasks(response: Response, owner: Owner = Depends(get_owner)) -> list[dict]:
    response.headers["X-Task-List-Revision"] = str(task_list_revision(owner))
    return [task.model_dump(mode="json") for task in database.get_all_tasks(owner)]


@app.post("/command")
async def command(
    request: CommandRequest,
    owner: Owner = Depends(get_owner),
    store: ConfirmationStore = Depends(get_confirmations),
):
    """Parse a command; run it right away unless it needs confirmation."""
    try:
        parsed = await understand_command(request.input)
        result = gate_command(owner, parsed, store)
        if not result.requires_confirm:
            execution = execute_actions(owner, result.actions)
            result = result.model_copy(update={
                "success": execution.success,
                "result_message": execution.message,
                "actions_executed_count": execution.affected_count,
            })
        return result.to_json()
    except ActionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AmbiguousMatchError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception:
        return _unexpected_error("handling a command")


@app.post("/command/confirm")
def confirm_command(
    request: ConfirmRequest,
    owner: Owner = Depends(get_owner),
    store: ConfirmationStore = Depends(get_confirmations),
):
    """Execute a batch parked behind a confirmation token."""
    pending = store.redeem(request.confirm_token, owner)
    if pending is None:
        raise HTTPException(status_code=400, detail=EXPIRED_MESSAGE)

    try:
        actions = validate_actions(pending.actions)
        execution = execute_actions(owner, actions)
        return {**execution.model_dump(by_alias=True), "preview": pending.preview}
    except ActionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        return _unexpected_error("confirming a command")


@app.get("/suggestions")
def get_suggestions(owner: Owner = Depends(get_owner)) -> list[dict]:
    tasks = database.get_all_tasks(owner)
    return [suggestion.model_dump(by_alias=True) for suggestion in suggest_recurring(tasks)]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
