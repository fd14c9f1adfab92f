# Shared library for the maintenance scheduling service: authentication,
# middleware, error envelopes, pagination and clients for collaborating
# services.

__version__ = "1.0.0"
