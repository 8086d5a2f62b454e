# Logger Configuration
NAMESPACE = "lambda_worker"
"""Application logger namespace for all components."""

# Control Endpoint Configuration
DEFAULT_RUNTIME_API = "127.0.0.1:7000"
"""Control endpoint address used when AWS_LAMBDA_RUNTIME_API is not set."""

RUNTIME_API_ENV = "AWS_LAMBDA_RUNTIME_API"
"""Environment variable holding the control endpoint host:port."""

API_PREFIX = "/2018-06-01/runtime"
"""Path prefix shared by every control endpoint route."""

NEXT_INVOCATION_PATH = f"{API_PREFIX}/invocation/next"
INVOCATION_RESPONSE_PATH = API_PREFIX + "/invocation/{request_id}/response"
INVOCATION_ERROR_PATH = API_PREFIX + "/invocation/{request_id}/error"
INIT_ERROR_PATH = f"{API_PREFIX}/init/error"

# Wire Headers
HEADER_PREFIX = "Lambda-Runtime-"
REQUEST_ID_HEADER = "Lambda-Runtime-Aws-Request-Id"
DEADLINE_HEADER = "Lambda-Runtime-Deadline-Ms"
FUNCTION_ERROR_TYPE_HEADER = "Lambda-Runtime-Function-Error-Type"

METADATA_HEADERS = [
    "Lambda-Runtime-Trace-Id",
    "Lambda-Runtime-Invoked-Function-Arn",
    "Lambda-Runtime-Client-Context",
    "Lambda-Runtime-Cognito-Identity",
]
"""Optional next-invocation headers copied into Invocation.metadata."""

UNHANDLED_ERROR_TYPE = "Unhandled"

# Timeouts and Retries
DEFAULT_REQUEST_TIMEOUT = 30.0
"""Seconds allowed for report calls and for invocations without a deadline."""

DEFAULT_FETCH_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 0.1
DEFAULT_MAX_BACKOFF = 2.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Entry Point
DEFAULT_HANDLER_MODULE = "handler_module"
"""Module imported by the entry point when HANDLER_MODULE is not set."""

HANDLER_PROVIDER_ATTRIBUTE = "handler_provider"
