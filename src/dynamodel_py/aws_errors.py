from __future__ import annotations

from botocore.exceptions import ClientError

from .errors import ConditionalCheckFailedError


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def map_client_error(err: ClientError) -> Exception:
    code = error_code(err)
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "ConditionalCheckFailedException":
        return ConditionalCheckFailedError(message or "the conditional request failed")

    return err
