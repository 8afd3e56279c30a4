"""
A connector opens a conduit to an endpoint. The socket connector resolves a pool of hosts and
connects to the first one that accepts a connection.
"""
