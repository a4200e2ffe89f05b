"""
Bundled demo datasets shown while a view has no live rows.

Rows use the same shape as store rows so they flow through the regular
mappers and aggregates. Each builder returns fresh copies; timestamps are
relative to `now` so demo ETAs count down like live ones.
"""
import json
from datetime import datetime, timedelta


def _notes(name: str, phone: str, landmark: str) -> str:
    return json.dumps({"customer_name": name, "customer_phone": phone, "landmark": landmark})


def _item(item_id: str, name: str, quantity: int, price: float, available: bool = True) -> dict:
    return {"id": item_id, "name": name, "quantity": quantity, "price": price, "available": available}


# ── Rider dashboard ────────────────────────────────────────────────

def rider_orders(now: datetime) -> list[dict]:
    """Demo assignments: four active orders (two share Nehru Hall) and one delivery."""
    return [
        {
            "id": "demo-1",
            "order_number": "FD2024021501",
            "order_type": "food",
            "status": "confirmed",
            "payment_method": "COD",
            "total_amount": 280,
            "final_amount": 280,
            "delivery_address": "Room 204, Nehru Hall, IIT Kharagpur",
            "delivery_instructions": "Please call before arriving. Extra spicy biryani requested.",
            "restaurant_name": "Biryani House",
            "items": [
                _item("1", "Chicken Biryani", 1, 180),
                _item("2", "Raita", 1, 40),
                _item("3", "Gulab Jamun", 2, 30),
            ],
            "notes": _notes("Rahul Sharma", "+91 98765 43210", "Near Main Gate"),
            "estimated_delivery_time": now + timedelta(minutes=25),
            "created_at": now - timedelta(minutes=5),
            "updated_at": now - timedelta(minutes=5),
        },
        {
            "id": "demo-2",
            "order_number": "FD2024021502",
            "order_type": "food",
            "status": "out_for_delivery",
            "payment_method": "upi",
            "total_amount": 325,
            "final_amount": 325,
            "delivery_address": "B-Wing, LBS Hall, IIT Kharagpur",
            "restaurant_name": "Punjabi Dhaba",
            "items": [
                _item("4", "Paneer Butter Masala", 1, 160),
                _item("5", "Butter Naan", 3, 15),
                _item("6", "Dal Tadka", 1, 120),
            ],
            "notes": _notes("Priya Patel", "+91 87654 32109", "Behind Library"),
            "estimated_delivery_time": now + timedelta(minutes=15),
            "created_at": now - timedelta(minutes=20),
            "updated_at": now - timedelta(minutes=2),
        },
        {
            "id": "demo-3",
            "order_number": "FD2024021503",
            "order_type": "food",
            "status": "preparing",
            "payment_method": "COD",
            "total_amount": 420,
            "final_amount": 420,
            "delivery_address": "Room 312, Patel Hall, IIT Kharagpur",
            "delivery_instructions": "No onions in fried rice",
            "restaurant_name": "Chinese Corner",
            "items": [
                _item("7", "Veg Fried Rice", 1, 140),
                _item("8", "Chilli Paneer", 1, 180),
                _item("9", "Spring Rolls", 1, 100),
            ],
            "notes": _notes("Amit Kumar", "+91 76543 21098", "Near Sports Complex"),
            "estimated_delivery_time": now + timedelta(minutes=30),
            "created_at": now - timedelta(minutes=8),
            "updated_at": now - timedelta(minutes=8),
        },
        {
            "id": "demo-4",
            "order_number": "FD2024021504",
            "order_type": "food",
            "status": "ready",
            "payment_method": "razorpay",
            "total_amount": 210,
            "final_amount": 210,
            "delivery_address": "Room 301, Nehru Hall, IIT Kharagpur",
            "restaurant_name": "Biryani House",
            "items": [_item("12", "Veg Biryani", 1, 150), _item("13", "Lassi", 1, 60)],
            "notes": _notes("Ananya Gupta", "+91 99887 76655", "Third Floor"),
            "estimated_delivery_time": now + timedelta(minutes=20),
            "created_at": now - timedelta(minutes=12),
            "updated_at": now - timedelta(minutes=4),
        },
        {
            "id": "demo-5",
            "order_number": "FD2024021498",
            "order_type": "food",
            "status": "delivered",
            "payment_method": "upi",
            "total_amount": 180,
            "final_amount": 180,
            "delivery_address": "Room 105, Azad Hall, IIT Kharagpur",
            "restaurant_name": "South Indian Cafe",
            "items": [_item("10", "Masala Dosa", 2, 60), _item("11", "Filter Coffee", 2, 30)],
            "notes": _notes("Sneha Reddy", "+91 65432 10987", "Near Main Road"),
            "estimated_delivery_time": None,
            "created_at": now - timedelta(hours=2),
            "updated_at": now - timedelta(hours=1),
        },
    ]


# ── Order history ──────────────────────────────────────────────────

def history_orders(now: datetime) -> list[dict]:
    """Demo past orders across both order kinds and terminal statuses."""
    return [
        {
            "id": "demo-ord001",
            "order_number": "FD2402240001",
            "order_type": "food",
            "status": "delivered",
            "payment_method": "edcoins",
            "total_amount": 320,
            "discount_amount": 16,
            "delivery_fee": 0,
            "final_amount": 304,
            "delivery_address": "Hall 3, Room 204, IIT Kharagpur",
            "restaurant_name": "Nescafe Canteen",
            "items": [
                _item("i1", "Veg Fried Rice", 2, 80),
                _item("i2", "Masala Chai", 2, 20),
                _item("i3", "Paneer Butter Masala", 1, 120, available=False),
            ],
            "created_at": now - timedelta(days=1),
            "updated_at": now - timedelta(days=1),
        },
        {
            "id": "demo-ord002",
            "order_number": "DS2402230002",
            "order_type": "store",
            "status": "delivered",
            "payment_method": "razorpay",
            "total_amount": 184,
            "discount_amount": 0,
            "delivery_fee": 0,
            "final_amount": 184,
            "delivery_address": "Hall 3, Room 204, IIT Kharagpur",
            "restaurant_name": None,
            "items": [
                _item("i4", "Maggi Noodles (Pack of 6)", 1, 84),
                _item("i5", "Bisleri Water 1L", 3, 20),
                _item("i6", "Lay's Classic Salted", 2, 20),
            ],
            "created_at": now - timedelta(days=2),
            "updated_at": now - timedelta(days=2),
        },
        {
            "id": "demo-ord003",
            "order_number": "FD2402220003",
            "order_type": "food",
            "status": "cancelled",
            "payment_method": "cod",
            "total_amount": 170,
            "discount_amount": 0,
            "delivery_fee": 30,
            "final_amount": 200,
            "delivery_address": "Hall 3, Room 204, IIT Kharagpur",
            "restaurant_name": "Gyan Mandir Dhaba",
            "items": [
                _item("i7", "Dal Tadka", 1, 70),
                _item("i8", "Roti (4 pcs)", 1, 40),
                _item("i9", "Jeera Rice", 1, 60),
            ],
            "created_at": now - timedelta(days=3),
            "updated_at": now - timedelta(days=3),
        },
    ]


# ── Student dashboard ──────────────────────────────────────────────

def dashboard_transactions(now: datetime) -> list[dict]:
    """Demo wallet ledger; the balance stays at the store's value (zero) in fallback."""
    return [
        {
            "id": "demo-txn1",
            "transaction_type": "credit",
            "amount": 500,
            "description": "Wallet top-up via UPI",
            "status": "completed",
            "created_at": now - timedelta(days=1),
        },
        {
            "id": "demo-txn2",
            "transaction_type": "debit",
            "amount": 304,
            "description": "Food order FD2402240001",
            "status": "completed",
            "created_at": now - timedelta(days=1, hours=2),
        },
        {
            "id": "demo-txn3",
            "transaction_type": "refund",
            "amount": 200,
            "description": "Refund for cancelled order FD2402220003",
            "status": "completed",
            "created_at": now - timedelta(days=3),
        },
    ]


# ── Account security ───────────────────────────────────────────────

def security_sessions(now: datetime) -> list[dict]:
    """Default signed-in devices shown until the store reports real sessions."""
    return [
        {
            "id": "s1",
            "device": "Chrome on Windows",
            "location": "Kharagpur, WB",
            "is_current": True,
            "created_at": now,
        },
        {
            "id": "s2",
            "device": "Safari on iPhone",
            "location": "Kharagpur, WB",
            "is_current": False,
            "created_at": now - timedelta(hours=2),
        },
        {
            "id": "s3",
            "device": "Firefox on MacOS",
            "location": "Kolkata, WB",
            "is_current": False,
            "created_at": now - timedelta(days=3),
        },
    ]
