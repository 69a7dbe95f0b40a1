from typing import Any, Dict, List


# Wire-format (camelCase) rule documents loaded by ``pricing_engine.scripts.seed``
# when the ``pricing_rules`` table is empty.
DEFAULT_PRICING_RULES: List[Dict[str, Any]] = [
    {
        "id": "rule_extra_crew_labor",
        "name": "Extra Crew Labor",
        "description": "Add 10% to labor for crews larger than two",
        "category": "crew_adjustments",
        "priority": 50,
        "conditions": [{"field": "crewSize", "operator": "gt", "value": 2}],
        "actions": [
            {
                "type": "add_percentage",
                "amount": 10,
                "targetField": "laborCost",
                "description": "Extra crew coordination",
            }
        ],
        "applicableServices": ["local", "packing_only"],
    },
    {
        "id": "rule_weekend_surcharge",
        "name": "Weekend Surcharge",
        "description": "Apply 15% surcharge for weekend moves",
        "category": "timing",
        "priority": 100,
        "conditions": [{"field": "isWeekend", "operator": "eq", "value": True}],
        "actions": [
            {
                "type": "add_percentage",
                "amount": 15,
                "targetField": "totalPrice",
                "description": "Weekend surcharge",
            }
        ],
        "applicableServices": ["local", "long_distance"],
    },
    {
        "id": "rule_peak_season",
        "name": "Peak Season Surcharge",
        "description": "Apply 20% surcharge during peak moving season",
        "category": "timing",
        "priority": 150,
        "conditions": [{"field": "seasonalPeriod", "operator": "eq", "value": "peak"}],
        "actions": [
            {
                "type": "add_percentage",
                "amount": 20,
                "targetField": "totalPrice",
                "description": "Peak season surcharge",
            }
        ],
        "applicableServices": ["local", "long_distance", "storage"],
    },
    {
        "id": "rule_heavy_items",
        "name": "Heavy Items Surcharge",
        "description": "Add $200 for moves over 5000 lbs",
        "category": "weight_volume",
        "priority": 200,
        "conditions": [{"field": "totalWeight", "operator": "gt", "value": 5000}],
        "actions": [
            {
                "type": "add_fixed",
                "amount": 200,
                "targetField": "totalPrice",
                "description": "Heavy load surcharge",
            }
        ],
        "applicableServices": ["local", "long_distance"],
    },
    {
        "id": "rule_long_haul",
        "name": "Long Haul Fuel Surcharge",
        "description": "Add 8% for long-distance moves over 500 miles",
        "category": "distance",
        "priority": 300,
        "conditions": [{"field": "distance", "operator": "gt", "value": 500}],
        "actions": [
            {
                "type": "add_percentage",
                "amount": 8,
                "targetField": "totalPrice",
                "description": "Fuel surcharge",
            }
        ],
        "applicableServices": ["long_distance"],
    },
    {
        "id": "rule_piano",
        "name": "Piano Handling Fee",
        "description": "Add $250 for piano transport",
        "category": "special_items",
        "priority": 400,
        "conditions": [{"field": "specialItems.piano", "operator": "eq", "value": True}],
        "actions": [
            {
                "type": "add_fixed",
                "amount": 250,
                "targetField": "totalPrice",
                "description": "Piano handling fee",
            }
        ],
        "applicableServices": ["local", "long_distance"],
    },
    {
        "id": "rule_stairs_pickup",
        "name": "Pickup Stairs Fee",
        "description": "Charge for walk-ups without elevator access at pickup",
        "category": "location_handicaps",
        "priority": 500,
        "conditions": [
            {"field": "pickup.elevatorAccess", "operator": "eq", "value": False},
            {"field": "pickup.stairsCount", "operator": "gt", "value": 0},
        ],
        "actions": [
            {
                "type": "add_fixed",
                "amount": 75,
                "targetField": "totalPrice",
                "description": "Stairs handling",
            },
            {
                "type": "add_fixed",
                "amount": 50,
                "targetField": "totalPrice",
                "description": "Difficult access",
                "condition": "pickup.accessDifficulty in [\"difficult\", \"extreme\"]",
            },
        ],
        "applicableServices": ["local", "long_distance"],
    },
    {
        "id": "rule_packing_materials",
        "name": "Packing Materials",
        "description": "Flat materials fee when packing is requested",
        "category": "additional_services",
        "priority": 600,
        "conditions": [
            {"field": "additionalServices.packing", "operator": "eq", "value": True}
        ],
        "actions": [
            {
                "type": "add_fixed",
                "amount": 120,
                "targetField": "totalPrice",
                "description": "Boxes, tape and wrap",
            }
        ],
        "applicableServices": ["local", "long_distance", "packing_only"],
    },
]
