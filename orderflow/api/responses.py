"""HTTP mapping of command results."""
from fastapi.responses import JSONResponse

from orderflow.services.ordering.models import CommandOutcome, CommandResult

STATUS_CODES = {
    CommandOutcome.APPLIED: 200,
    CommandOutcome.REJECTED: 400,
    CommandOutcome.NOT_FOUND: 404,
    CommandOutcome.ALREADY_PROCESSED: 409,
    CommandOutcome.NOT_READY: 409,
}


def command_response(result: CommandResult) -> JSONResponse:
    """Render a command result with the status code of its outcome."""
    return JSONResponse(status_code=STATUS_CODES[result.outcome], content=result.to_payload())
