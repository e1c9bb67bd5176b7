"""Transport layer: three-phase bulk exchange and the pyusb session."""

from .exchange import Exchange, exchange, recv_request, send_request
