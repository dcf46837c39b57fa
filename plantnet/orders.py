from typing import Dict, Iterable, List

from bson import ObjectId

# Literal terminal value stored by existing clients; kept as-is.
ORDER_CANCELLED_STATUS = "cancle"

REVENUE_BY_DAY_PIPELINE = [
    {"$addFields": {"createAt": {"$toDate": "$_id"}}},
    {
        "$group": {
            "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$createAt"}},
            "revenue": {"$sum": "$price"},
            "order": {"$sum": 1},
        }
    },
    {"$sort": {"_id": 1}},
]


def summarize_revenue(rows: Iterable[Dict]) -> Dict[str, object]:
    """Reduce per-day aggregation rows into chart data and grand totals."""
    bar_chart_data: List[Dict[str, object]] = []
    total_revenue = 0
    total_orders = 0
    for row in rows:
        revenue = row.get("revenue") or 0
        order_count = row.get("order") or 0
        bar_chart_data.append(
            {"date": row.get("_id"), "revenue": revenue, "order": order_count}
        )
        total_revenue += revenue
        total_orders += order_count
    return {
        "totalRevenue": total_revenue,
        "totalOrder": total_orders,
        "barChatData": bar_chart_data,
    }


class OrderBook:
    def __init__(self, db):
        self.collection = db.orders
        self.users = db.users
        self.plants = db.plants

    def create_order(self, order_data: Dict):
        # No referential check against the catalog.
        return self.collection.insert_one(order_data)

    def list_by_customer_email(self, email: str) -> List[Dict]:
        return list(self.collection.find({"customer.email": email}))

    def list_by_seller_email(self, email: str) -> List[Dict]:
        return list(self.collection.find({"seller.email": email}))

    def update_status(self, order_id: ObjectId, status: str):
        return self.collection.update_one(
            {"_id": order_id}, {"$set": {"status": status}}
        )

    def cancel_order(self, order_id: ObjectId):
        # Upsert: an unknown id yields a document holding only the status.
        return self.collection.update_one(
            {"_id": order_id},
            {"$set": {"status": ORDER_CANCELLED_STATUS}},
            upsert=True,
        )

    def revenue_by_day(self) -> Dict[str, object]:
        summary = summarize_revenue(self.collection.aggregate(REVENUE_BY_DAY_PIPELINE))
        return {
            "totalUsers": self.users.estimated_document_count(),
            "totalPlant": self.plants.estimated_document_count(),
            **summary,
        }
