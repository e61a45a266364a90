"""Database plumbing: declarative base, engine, immutability listeners."""
