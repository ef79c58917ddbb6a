"""
Ingestion package — external weather sources.

Modules:
    models         — provider-agnostic weather records
    source_client  — bounded single HTTP GET per provider
    adapters       — provider payload normalisation
    providers      — provider chains per data class
    fallback       — synthetic data when every provider fails
"""
