
from datetime import datetime, timezone
from typing import Optional

from pymongo import MongoClient

from ..models import Thresholds


class MongoRepo:
    def __init__(self, uri: str, db_name: str, config_id: str = "global") -> None:
        self.client = MongoClient(uri, serverSelectionTimeoutMS=5000)
        self.db = self.client[db_name]
        self.thresholds = self.db["thresholds"]
        self.config_id = config_id

    def get_thresholds(self) -> Optional[Thresholds]:
        doc = self.thresholds.find_one({"_id": self.config_id}, {"_id": 0, "updated_at": 0})
        return Thresholds(**doc) if doc else None

    def save_thresholds(self, thresholds: Thresholds) -> None:
        # one document per configuration identity; last writer wins
        self.thresholds.update_one(
            {"_id": self.config_id},
            {"$set": {**thresholds.model_dump(), "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )
