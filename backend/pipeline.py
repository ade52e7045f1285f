"""
Two-step command understanding: the language model first, the rule-based
parser when the model reports a failure.
"""
import logging
from datetime import date
from typing import Optional

from actions import ParsedCommand, validate_parsed_command
from command_parser import parse_command
from datetimes import utc_now
from model_parser import ModelFailure, parse_with_model

logger = logging.getLogger(__name__)


async def understand_command(text: str, today: Optional[date] = None, client=None) -> ParsedCommand:
    """
    Turn raw input into a validated ParsedCommand.

    Raises ActionValidationError only if the rule-based result itself is
    invalid; model problems always fall back.
    """
    today = today or utc_now().date()

    result = await parse_with_model(text, client=client, today=today)
    if not isinstance(result, ModelFailure):
        return result

    if result.kind == "not_configured":
        logger.debug("Model not configured, using rule-based parser")
    else:
        logger.warning("Model parse failed (%s), falling back to rule-based parser", result)
    return validate_parsed_command(parse_command(text, today=today))
