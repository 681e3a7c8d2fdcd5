"""Начальная схема базы данных"""

from database.migrations.migration_manager import Migration


class InitialSchema(Migration):
    version = 1
    description = "Initial schema: businesses, services, staff, appointments"

    async def upgrade(self, db):
        # Справочники (читаются ядром, изменяются снаружи)
        await db.execute(
            """CREATE TABLE IF NOT EXISTS businesses
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            is_active BOOLEAN DEFAULT 1,
            schedule TEXT NOT NULL DEFAULT '{}',
            booking_config TEXT NOT NULL DEFAULT '{}')"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS services
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            business_id INTEGER NOT NULL REFERENCES businesses(id),
            name TEXT NOT NULL,
            duration_minutes INTEGER NOT NULL CHECK (duration_minutes > 0),
            price REAL NOT NULL,
            final_price REAL NOT NULL,
            is_active BOOLEAN DEFAULT 1)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS staff
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            business_id INTEGER NOT NULL REFERENCES businesses(id),
            name TEXT NOT NULL,
            is_active BOOLEAN DEFAULT 1)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS staff_services
            (staff_id INTEGER NOT NULL REFERENCES staff(id),
            service_id INTEGER NOT NULL REFERENCES services(id),
            PRIMARY KEY (staff_id, service_id))"""
        )

        # Записи
        await db.execute(
            """CREATE TABLE IF NOT EXISTS appointments
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            business_id INTEGER NOT NULL,
            client_id INTEGER NOT NULL,
            staff_id INTEGER,
            date TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            start_at TEXT NOT NULL,
            end_at TEXT NOT NULL,
            total_duration INTEGER NOT NULL,
            services TEXT NOT NULL,
            status TEXT NOT NULL,
            subtotal REAL NOT NULL DEFAULT 0,
            discount REAL NOT NULL DEFAULT 0,
            promotion_id INTEGER,
            discount_code TEXT,
            deposit REAL NOT NULL DEFAULT 0,
            deposit_paid BOOLEAN DEFAULT 0,
            deposit_charge_ref TEXT,
            total REAL NOT NULL DEFAULT 0,
            tip REAL NOT NULL DEFAULT 0,
            final_total REAL NOT NULL DEFAULT 0,
            cancellation TEXT,
            notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK (start_time < end_time),
            CHECK (total >= 0 AND deposit >= 0 AND deposit <= total))"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS appointment_status_history
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            appointment_id INTEGER NOT NULL REFERENCES appointments(id),
            status TEXT NOT NULL,
            changed_by INTEGER,
            changed_at TEXT NOT NULL,
            reason TEXT)"""
        )

        # Индексы
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_services_business ON services(business_id, is_active)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_staff_business ON staff(business_id, is_active)"
        )
        await db.execute(
            """CREATE INDEX IF NOT EXISTS idx_appointments_staff_date
            ON appointments(business_id, staff_id, date, status)"""
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_client ON appointments(client_id)"
        )
        await db.execute(
            """CREATE INDEX IF NOT EXISTS idx_status_history_appointment
            ON appointment_status_history(appointment_id)"""
        )

        # Защита от race condition: одна активная запись на старт у сотрудника
        await db.execute(
            """CREATE UNIQUE INDEX IF NOT EXISTS idx_appointments_active_start
            ON appointments(business_id, staff_id, date, start_time)
            WHERE status IN ('pending', 'confirmed', 'checked_in', 'in_progress')"""
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS appointment_status_history")
        await db.execute("DROP TABLE IF EXISTS appointments")
        await db.execute("DROP TABLE IF EXISTS staff_services")
        await db.execute("DROP TABLE IF EXISTS staff")
        await db.execute("DROP TABLE IF EXISTS services")
        await db.execute("DROP TABLE IF EXISTS businesses")
