from .remote_connection import ConnectionState, RemoteConnection, render_call_result

__all__ = ["ConnectionState", "RemoteConnection", "render_call_result"]
