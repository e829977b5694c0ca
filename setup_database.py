"""
Create the MySQL database named in DATABASE_URL, then the threat-monitor tables
"""
import pymysql
from sqlalchemy.engine import make_url

from threatmonitor.config import settings

def create_database():
    """Create the threat-monitor database if it doesn't exist"""
    url = make_url(settings.DATABASE_URL)
    if not url.drivername.startswith('mysql'):
        print(f"ℹ️  {url.drivername} needs no server-side database creation")
        return create_tables()
    
    database_name = url.database or 'threatmonitor'
    host, port = url.host or 'localhost', url.port or 3306
    print(f"Connecting to MySQL at {host}:{port}...")
    
    try:
        # Connect to MySQL server (without database)
        connection = pymysql.connect(
            host=host,
            port=port,
            user=url.username,
            password=url.password or ''
        )
        with connection.cursor() as cursor:
            cursor.execute(
                f"CREATE DATABASE IF NOT EXISTS `{database_name}` "
                "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
            )
        connection.close()
        print(f"✓ Database '{database_name}' created/verified")
        
    except pymysql.Error as e:
        print(f"✗ MySQL Error: {e}")
        print("\nPlease ensure:")
        print("1. MySQL is running")
        print("2. Username and password are correct")
        print("3. User has CREATE DATABASE permission")
        return False
    
    return create_tables()

def create_tables():
    from threatmonitor.database import init_db
    init_db()
    print(f"✓ Tables ready at {make_url(settings.DATABASE_URL).render_as_string(hide_password=True)}")
    return True

if __name__ == "__main__":
    create_database()
