from app.store.client import RecordStore, SQLRecordStore, get_store

__all__ = ["RecordStore", "SQLRecordStore", "get_store"]
