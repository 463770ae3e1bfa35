import sys

from coursetrack.utils.database import init_database, reset_database

if "--reset" in sys.argv:
    print("Dropping and recreating tables...")
    reset_database()
else:
    print("Creating tables...")
    init_database()
print("Done.")
