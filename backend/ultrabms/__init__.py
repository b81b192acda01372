"""Ultra BMS - Tenant & Lease Lifecycle Engine."""
