import importlib
import logging
import os
import sys
from typing import cast

from .constants import DEFAULT_HANDLER_MODULE, HANDLER_PROVIDER_ATTRIBUTE, NAMESPACE
from .logger import setup_logging
from .runner import HandlerProvider
from .worker import start

log = logging.getLogger(f"{NAMESPACE}.{__name__.split('.')[-1]}")


def load_handler_provider() -> HandlerProvider:
    """
    Dynamically load the handler provider from the configured module.

    Returns:
        The ``handler_provider`` callable exported by HANDLER_MODULE

    Raises:
        ImportError: If the module cannot be imported
        AttributeError: If the module doesn't export a handler provider
        TypeError: If the exported provider is not callable
    """
    module_name = os.environ.get("HANDLER_MODULE", DEFAULT_HANDLER_MODULE)

    try:
        module = importlib.import_module(module_name)

        if not hasattr(module, HANDLER_PROVIDER_ATTRIBUTE):
            raise AttributeError(
                f"Module '{module_name}' does not export a '{HANDLER_PROVIDER_ATTRIBUTE}' function"
            )

        provider = getattr(module, HANDLER_PROVIDER_ATTRIBUTE)

        if not callable(provider):
            raise TypeError(
                f"'{HANDLER_PROVIDER_ATTRIBUTE}' in module '{module_name}' is not callable"
            )

        log.info(f"Loaded handler provider from module: {module_name}")
        return cast(HandlerProvider, provider)

    except ImportError as e:
        log.error(f"Failed to import module '{module_name}': {e}")
        raise
    except (AttributeError, TypeError) as e:
        log.error(str(e))
        raise


def main() -> None:
    setup_logging()
    provider = load_handler_provider()
    sys.exit(start(provider))


if __name__ == "__main__":
    main()
