"""
Extract Layer - Pure I/O against the cloud API

- Single logical calls with retry and throttling (api_client)
- Continuation-token pagination (pagination)
- DataFrame collection helpers (data_fetcher)
"""
