"""Backend connectors, registered under the ``tokenkv.backends`` entry point group."""
