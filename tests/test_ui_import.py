"""
Tests for the server-rendered import wizard under /ui/children/import
"""
from sqlalchemy import select

from src.kita_fees.models import Child, User
from src.kita_fees.services.import_wizard import IMPORT_WIZARDS

CSV = (
    "Mitgliedsnummer;Vorname;Nachname;Geburtsdatum;Eintrittsdatum;Betreuungszeit\n"
    "2001;Ben;Schulz;01.05.2021;01.09.2024;6\n"
    "2002;Lena;;03.02.2022;01.09.2024;35\n"
).encode("utf-8")


def login(client, email="admin@example.com", password="geheim123"):
    return client.post(
        "/ui/login",
        data={"email": email, "password": password},
        follow_redirects=False,
    )


def mapping_form(**overrides):
    form = {
        "map_memberNumber": "0",
        "map_firstName": "1",
        "map_lastName": "2",
        "map_birthDate": "3",
        "map_entryDate": "4",
        "map_careHours": "5",
    }
    form.update(overrides)
    return form


class TestLogin:
    def test_login_redirects_to_children(self, client, admin, db):
        response = login(client)

        assert response.status_code == 302
        assert response.headers["location"] == "/ui/children"
        db.expire_all()
        assert db.get(User, admin.id).last_login_at is not None
        db.rollback()

    def test_wrong_password(self, client, admin):
        response = login(client, password="falsch")

        assert response.status_code == 401
        assert "E-Mail-Adresse oder Passwort ist falsch" in response.text

    def test_import_requires_login(self, client):
        response = client.get("/ui/children/import", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/ui/login"

    def test_viewer_cannot_import(self, client, viewer):
        login(client, email="viewer@example.com")

        response = client.get("/ui/children/import", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/ui/children"


class TestWizardFlow:
    def test_full_import(self, client, admin, db):
        login(client)

        page = client.get("/ui/children/import")
        assert page.status_code == 200
        assert "CSV-Datei hier ablegen" in page.text

        mapping = client.post(
            "/ui/children/import/upload",
            files={"file": ("kinder.csv", CSV, "text/csv")},
        )
        assert mapping.status_code == 200
        assert "Datei erkannt" in mapping.text
        assert "Gefundene Spalten" in mapping.text

        preview = client.post("/ui/children/import/preview", data=mapping_form())
        assert preview.status_code == 200
        assert "1 gültige Einträge" in preview.text
        assert "FEHLER" in preview.text

        results = client.post("/ui/children/import/execute")
        assert results.status_code == 200
        assert "Import abgeschlossen" in results.text
        assert "Kinder angelegt: 1" in results.text

        child = db.execute(select(Child).where(Child.member_number == "2001")).scalar_one()
        assert child.care_hours == 30
        db.rollback()

    def test_fixing_a_row_in_preview(self, client, admin, db):
        login(client)
        client.post("/ui/children/import/upload", files={"file": ("kinder.csv", CSV, "text/csv")})
        client.post("/ui/children/import/preview", data=mapping_form())

        edited = client.post("/ui/children/import/rows/1/edit", data={
            "member_number": "2002",
            "first_name": "Lena",
            "last_name": "Weber",
            "birth_date": "03.02.2022",
            "entry_date": "2024-09-01",
            "legal_hours": "",
            "care_hours": "35",
        })
        assert "2 Einträge importieren" in edited.text

        client.post("/ui/children/import/execute")

        child = db.execute(select(Child).where(Child.member_number == "2002")).scalar_one()
        assert child.last_name == "Weber"
        assert child.care_hours == 35
        db.rollback()

    def test_wrong_extension_stays_on_upload(self, client, admin):
        login(client)

        response = client.post(
            "/ui/children/import/upload",
            files={"file": ("kinder.pdf", b"%PDF", "application/pdf")},
        )

        assert "Bitte eine CSV-Datei hochladen" in response.text
        assert "CSV-Datei hier ablegen" in response.text

    def test_parse_error_is_shown(self, client, admin):
        login(client)

        response = client.post(
            "/ui/children/import/upload",
            files={"file": ("kinder.csv", b"\x00\x00", "text/csv")},
        )

        assert "Die Datei ist keine Textdatei (CSV)" in response.text

        dismissed = client.post("/ui/children/import/dismiss-error")
        assert "Die Datei ist keine Textdatei (CSV)" not in dismissed.text

    def test_malformed_csv_is_shown(self, client, admin):
        login(client)

        response = client.post(
            "/ui/children/import/upload",
            files={"file": ("kinder.csv", b"Mitgliedsnummer;Vorname\n1;\"" + b"x" * 200000, "text/csv")},
        )

        assert response.status_code == 200
        assert "Ungültiges CSV-Format" in response.text
        assert "CSV-Datei hier ablegen" in response.text

    def test_unmapped_member_number_blocks_preview(self, client, admin):
        login(client)
        client.post("/ui/children/import/upload", files={"file": ("kinder.csv", CSV, "text/csv")})

        response = client.post("/ui/children/import/preview", data=mapping_form(map_memberNumber=""))

        assert "Pflichtfelder nicht zugeordnet: memberNumber" in response.text
        assert "Gefundene Spalten" in response.text

    def test_back_returns_to_mapping(self, client, admin):
        login(client)
        client.post("/ui/children/import/upload", files={"file": ("kinder.csv", CSV, "text/csv")})
        client.post("/ui/children/import/preview", data=mapping_form())

        response = client.post("/ui/children/import/back")

        assert "Gefundene Spalten" in response.text

    def test_cancel_discards_wizard(self, client, admin):
        login(client)
        client.post("/ui/children/import/upload", files={"file": ("kinder.csv", CSV, "text/csv")})
        assert len(IMPORT_WIZARDS) == 1

        response = client.post("/ui/children/import/cancel", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/ui/children"
        assert len(IMPORT_WIZARDS) == 0
