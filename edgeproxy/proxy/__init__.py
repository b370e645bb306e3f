"""Proxy core: routing, upstream protocols and link rewriting.

Submodules are imported directly (``edgeproxy.proxy.engine``); the storage
layer depends on ``edgeproxy.proxy.headers``, so this package stays empty.
"""
