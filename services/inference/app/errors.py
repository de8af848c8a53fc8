"""Error taxonomy for the forecast pipeline.

Every per-request failure is a `PipelineError` carrying the HTTP status it
maps to. Route handlers catch `PipelineError` at the pipeline boundary and
translate it into an `HTTPException`; nothing below the route knows about
HTTP beyond this status code.

`ModelLoadFailed` is deliberately not a `PipelineError`: it is raised only at
startup and stops the service from accepting requests.
"""


class PipelineError(Exception):
    """Base class for per-request pipeline failures."""

    status_code = 500

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return f"{self.kind}: {super().__str__()}"


class ClientError(PipelineError):
    """The request itself is unusable (4xx)."""

    status_code = 400


class MalformedInput(ClientError):
    """Body is not a JSON object with a `values` array."""

    status_code = 400


class ShapeMismatch(ClientError):
    """`values` does not hold exactly the model's window length."""

    status_code = 422


class InvalidValue(ClientError):
    """An element of `values` is non-numeric, NaN or infinite."""

    status_code = 422


class ServerError(PipelineError):
    """The service could not produce a forecast for a valid request (5xx)."""

    status_code = 500


class BackendUnavailable(ServerError):
    """The inference backend rejected a context, bind, compute or read call."""

    status_code = 503


class ExecutionFailed(ServerError):
    """The backend reported an internal error while computing."""

    status_code = 500


class OutputShapeMismatch(ServerError):
    """The model output does not match the expected shape or dtype."""

    status_code = 500


class ModelLoadFailed(Exception):
    """The model could not be loaded or validated at startup (fatal)."""
