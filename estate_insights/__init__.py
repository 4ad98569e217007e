"""Property listing analytics and insights service."""
