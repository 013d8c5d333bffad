"""
Combinación y validación de parámetros de tracking (query string + form body)
"""
from typing import Dict, Mapping


class ParameterValidationError(ValueError):
    """Falta un campo obligatorio; se traduce a HTTP 400"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def merge_params(
    method: str,
    query_params: Mapping[str, str],
    form_params: Mapping[str, str],
) -> Dict[str, str]:
    """
    GET (o cualquier método que no sea POST): solo query params.
    POST: query params sobrescritos por los del form body.
    """
    merged = dict(query_params)
    if method.upper() == "POST":
        merged.update(form_params)
    return merged


def _require(params: Mapping[str, str], *fields: str) -> None:
    for field in fields:
        if field not in params:
            raise ParameterValidationError(f"Missing required field: {field}")


def validate_track_params(params: Mapping[str, str]) -> None:
    _require(params, "project", "event", "timestamp")


def validate_identify_params(params: Mapping[str, str]) -> None:
    # identify no exige `event`, pero sí al menos una propiedad u_*
    _require(params, "project", "timestamp")
    if not any(key.startswith("u_") for key in params):
        raise ParameterValidationError(
            "At least one user property (u_*) is required for identify events"
        )


def validate_update_params(params: Mapping[str, str]) -> None:
    _require(params, "id")
