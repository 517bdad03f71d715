# /stepflow/workflows/validator.py

"""
Pure validation functions for flow declarations.

These checks run once, when a FlowSpec is constructed, so that a typo in a
stream or step name fails at startup instead of in the middle of a
conversation.

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No logging
"""

from typing import Optional, TypedDict

from stepflow.workflows.errors import FlowSpecError


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


_VALID: ValidationResult = {"is_valid": True, "error_code": None, "message": None}


def _invalid(error_code: str, message: str) -> ValidationResult:
    return {"is_valid": False, "error_code": error_code, "message": message}


def validate_stream_name(flow_spec, stream_name: str) -> ValidationResult:
    """
    Validate that a stream is declared.

    Args:
        flow_spec: The FlowSpec to check against
        stream_name: The stream name to validate

    Returns:
        ValidationResult with is_valid=True if the stream exists
    """
    if not stream_name:
        return _invalid("EMPTY_STREAM", "Stream name cannot be empty")

    if stream_name not in flow_spec.streams:
        return _invalid("UNKNOWN_STREAM", f"Stream '{stream_name}' is not declared")

    return _VALID


def validate_stream_steps(flow_spec, stream_name: str) -> ValidationResult:
    """Validate that a stream is non-empty and only references registered steps."""
    step_names = flow_spec.streams.get(stream_name, [])
    if not step_names:
        return _invalid("EMPTY_STREAM_STEPS", f"Stream '{stream_name}' has no steps")

    for step_name in step_names:
        if step_name not in flow_spec.steps:
            return _invalid(
                "UNKNOWN_STEP",
                f"Stream '{stream_name}' references unregistered step '{step_name}'"
            )

    return _VALID


def validate_classifications(flow_spec) -> ValidationResult:
    """Validate that every classification targets a declared stream."""
    for intent, stream_name in flow_spec.classifications.items():
        if stream_name not in flow_spec.streams:
            return _invalid(
                "UNKNOWN_CLASSIFICATION_TARGET",
                f"Intent '{intent}' maps to undeclared stream '{stream_name}'"
            )
    return _VALID


def validate_flow_spec(flow_spec) -> ValidationResult:
    """
    Validate a whole flow declaration.

    Checks, in order: the main stream exists, every stream's steps are
    registered, and every classification targets a declared stream.
    """
    main_result = validate_stream_name(flow_spec, flow_spec.main)
    if not main_result["is_valid"]:
        return _invalid("UNKNOWN_MAIN_STREAM", f"Main stream: {main_result['message']}")

    for stream_name in flow_spec.streams:
        result = validate_stream_steps(flow_spec, stream_name)
        if not result["is_valid"]:
            return result

    return validate_classifications(flow_spec)


def raise_for_result(result: ValidationResult) -> None:
    if not result["is_valid"]:
        raise FlowSpecError(f"[{result['error_code']}] {result['message']}")
