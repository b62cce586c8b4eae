"""
jyt_admin.flows

Visual-flow automation: operation catalogue, shape validation, the executor and the
schedule trigger loop.
"""
