"""
OperationDispatcher - remote operation name -> AuctionEngine call.

Turns raw request bodies into engine calls and engine results into JSON
response envelopes:

    {"success": true, ...data}
    {"success": false, "error": "<message>"}

Nothing raised while handling a request escapes dispatch(); every failure
becomes an envelope, so a bad request never turns into a transport fault.
"""

import json
from typing import Awaitable, Callable, Dict, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from bidnet.core.auction.engine import AuctionEngine, EngineResult, ErrorKind
from bidnet.utils.logger import get_logger

logger = get_logger("dispatcher")

AUCTION_NOT_FOUND_MESSAGE = "Auction not found"

Envelope = dict
Handler = Callable[[BaseModel], Awaitable[Envelope]]


# =============================================================================
# Request models
# =============================================================================


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class OpenAuctionRequest(_Request):
    id: StrictStr
    description: StrictStr
    starting_price: Union[StrictInt, StrictFloat] = Field(alias="startingPrice")


class PlaceBidRequest(_Request):
    id: StrictStr
    bidder: StrictStr
    amount: Union[StrictInt, StrictFloat]


class CloseAuctionRequest(_Request):
    id: StrictStr


# =============================================================================
# Envelopes
# =============================================================================


def success_envelope(**data) -> Envelope:
    return {"success": True, **data}


def failure_envelope(error: str) -> Envelope:
    return {"success": False, "error": error}


def encode_envelope(envelope: Envelope) -> bytes:
    return json.dumps(envelope, separators=(",", ":")).encode("utf-8")


def result_failure_envelope(result: EngineResult) -> Envelope:
    """Envelope for a failed EngineResult."""
    if result.error == ErrorKind.AUCTION_NOT_FOUND:
        return failure_envelope(AUCTION_NOT_FOUND_MESSAGE)
    return failure_envelope(result.message)


def describe_validation_error(error: ValidationError) -> str:
    """First problem of a pydantic ValidationError, phrased for clients."""
    first = error.errors()[0]
    field = str(first["loc"][0]) if first["loc"] else "payload"
    if first["type"] == "missing":
        return f"Missing required field: {field}"
    return f"Invalid field {field}: {first['msg']}"


# =============================================================================
# Dispatcher
# =============================================================================


class OperationDispatcher:
    """
    Registry of remote operations backed by an AuctionEngine.

    Handles:
    - openAuction(id, description, startingPrice)
    - placeBid(id, bidder, amount)
    - closeAuction(id)
    """

    def __init__(self, engine: AuctionEngine):
        self.engine = engine
        self._handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        """Register built-in auction operations."""
        self.register("openAuction", OpenAuctionRequest, self._handle_open_auction)
        self.register("placeBid", PlaceBidRequest, self._handle_place_bid)
        self.register("closeAuction", CloseAuctionRequest, self._handle_close_auction)

    def register(self, method: str, request_model: Type[BaseModel], handler: Handler) -> None:
        """Register (or replace) a remote operation."""
        self._handlers[method] = (request_model, handler)

    @property
    def methods(self):
        return sorted(self._handlers)

    async def dispatch(self, method: str, payload: bytes) -> bytes:
        """Handle a raw request body and return the encoded response envelope."""
        return encode_envelope(await self.handle(method, payload))

    async def handle(self, method: str, payload: bytes) -> Envelope:
        """Handle a raw request body and return the response envelope."""
        entry = self._handlers.get(method)
        if entry is None:
            logger.warning(f"Unknown method requested: {method!r}")
            return failure_envelope(f"Unknown method: {method}")
        request_model, handler = entry

        try:
            data = json.loads(payload.decode("utf-8"))
        except (ValueError, RecursionError) as e:
            # Oversized int literals raise ValueError, deep nesting RecursionError
            logger.warning(f"Error handling {method}: invalid JSON payload ({e})")
            return failure_envelope(f"Invalid JSON payload: {e}")
        if not isinstance(data, dict):
            logger.warning(f"Error handling {method}: payload is not a JSON object")
            return failure_envelope("Invalid JSON payload: expected an object")

        try:
            request = request_model.model_validate(data)
        except ValidationError as e:
            message = describe_validation_error(e)
            logger.warning(f"Error handling {method}: {message}")
            return failure_envelope(message)

        try:
            envelope = await handler(request)
        except Exception as e:
            logger.exception(f"Error handling {method}")
            return failure_envelope(str(e) or type(e).__name__)

        if envelope["success"]:
            logger.info(f"{method} ok: {envelope}")
        else:
            logger.warning(f"Error handling {method}: {envelope['error']}")
        return envelope

    # =========================================================================
    # Operation handlers
    # =========================================================================

    async def _handle_open_auction(self, request: OpenAuctionRequest) -> Envelope:
        result = await self.engine.open_auction(request.id, request.description, request.starting_price)
        if not result.ok:
            return result_failure_envelope(result)
        return success_envelope()

    async def _handle_place_bid(self, request: PlaceBidRequest) -> Envelope:
        result = await self.engine.place_bid(request.id, request.bidder, request.amount)
        if not result.ok:
            return result_failure_envelope(result)
        return success_envelope()

    async def _handle_close_auction(self, request: CloseAuctionRequest) -> Envelope:
        result = await self.engine.close_auction(request.id)
        if not result.ok:
            return result_failure_envelope(result)

        outcome = result.value
        if outcome.winner is None:
            return success_envelope(winner=None, amount=None, noBids=True)
        return success_envelope(winner=outcome.winner.bidder, amount=outcome.winner.amount)
