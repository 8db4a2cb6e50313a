"""
Farms and memberships.

- A farm is the tenant boundary; every operational row carries a farm_id
- Membership links a user to a farm with a role (OWNER/ASSOCIATE/WORKER)
- A farm always keeps at least one ACTIVE OWNER
"""
