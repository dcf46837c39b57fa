from typing import Dict, List, Optional

from bson import ObjectId

QUANTITY_DIRECTIONS = {"increase", "decrease"}


class PlantCatalog:
    """Plant listings with price and stock."""

    def __init__(self, db):
        self.collection = db.plants

    def add_plant(self, plant_data: Dict):
        return self.collection.insert_one(plant_data)

    def list_plants(self) -> List[Dict]:
        return list(self.collection.find())

    def get_plant(self, plant_id: ObjectId) -> Optional[Dict]:
        return self.collection.find_one({"_id": plant_id})

    def adjust_quantity(self, plant_id: ObjectId, amount: int, direction: str):
        # No floor and no existence check: stock may go negative.
        delta = -amount if direction == "decrease" else amount
        return self.collection.update_one(
            {"_id": plant_id}, {"$inc": {"quantity": delta}}
        )
