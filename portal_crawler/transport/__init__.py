"""
HTTP transport for portal requests.
"""

from portal_crawler.transport.executor import RawResponse, RequestExecutor, RequestSpec, build_http_session

__all__ = ["RawResponse", "RequestExecutor", "RequestSpec", "build_http_session"]
