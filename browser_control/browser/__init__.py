"""
Browser package.

Connection, tab host, waits and passive observation over a single CDP client.
"""
