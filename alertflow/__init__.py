"""Alert ingestion and push notification distribution."""
