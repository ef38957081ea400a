# residents_db_schemas.py

# Note: While MongoDB is schemaless, this file defines the intended structure
# for our application data. RESIDENTS_VALIDATOR and RESIDENTS_INDEXES are
# applied by residents_db_setup.

RESIDENTS_SCHEMA = {
    "_id": "ObjectId",
    "name": "string", # INDEXED, UNIQUE together with birth
    "birth": "ISODate (midnight UTC)",
    "location": "string (e.g., 'Room 101')",
    "resident_since": "ISODate (midnight UTC)",
    "alarms": "array[{time: ISODate, message: string, duration: int (seconds)}]", # closed alarms
    "active_alarms": "array[{time: ISODate, message: string}]" # open alarms, time is unique per resident
}

RESIDENTS_VALIDATOR = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["name", "birth", "location", "resident_since"],
        "properties": {
            "name": {"bsonType": "string"},
            "birth": {"bsonType": "date"},
            "location": {"bsonType": "string"},
            "resident_since": {"bsonType": "date"},
            "alarms": {
                "bsonType": "array",
                "items": {
                    "bsonType": "object",
                    "required": ["time", "message", "duration"],
                    "properties": {
                        "time": {"bsonType": "date"},
                        "message": {"bsonType": "string"},
                        "duration": {"bsonType": ["int", "long"], "minimum": 0}
                    }
                }
            },
            "active_alarms": {
                "bsonType": "array",
                "items": {
                    "bsonType": "object",
                    "required": ["time", "message"],
                    "properties": {
                        "time": {"bsonType": "date"},
                        "message": {"bsonType": "string"}
                    }
                }
            }
        }
    }
}

RESIDENTS_INDEXES = [
    {"keys": {"name": 1, "birth": 1}, "options": {"unique": True, "name": "name_birth_unique"}},
    {"keys": {"location": 1}, "options": {"name": "location"}},
    {"keys": {"alarms.time": 1}, "options": {"name": "alarms_time"}}, # INDEXED (Multikey)
]
