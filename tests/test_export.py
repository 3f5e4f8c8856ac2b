"""Tests for spreadsheet export."""

import csv
import io
from datetime import date

from openpyxl import load_workbook
from openpyxl.utils import get_column_letter

from app.roster.columns import cell_value, find_column, group_columns_by_category, project_columns, project_events
from app.roster.export import (
    build_header_rows,
    content_disposition,
    export_filename,
    format_export_value,
    write_csv,
    write_xlsx,
)
from app.roster.rows import transform_to_rows


def sample_projection():
    guests = [{
        "id": "g1",
        "name": "Annabel",
        "email_valid": True,
        "guest_type": "maid_of_honor",
        "rsvp_deadline": "2026-05-01",
        "main_choice": 2,
        "table_position": 3,
    }]
    events = [{
        "id": "e1",
        "event_name": "Reception",
        "event_order": 1,
        "event_location": "Grand Hall",
        "event_start_time": "18:30",
    }]
    facts = [{"guest_id": "g1", "event_id": "e1", "attending": True, "shuttle_to_event": "Yes"}]
    return transform_to_rows(guests, events, facts, [
        {"option_number": 2, "meal_name": "Fish", "course_type": "main"},
    ])


class TestHeaderRows:
    def test_category_cells_span_their_group(self):
        columns = project_columns(project_events([{"id": "e1", "event_name": "Dinner", "event_order": 1}]))
        category_row, column_row, merges = build_header_rows(group_columns_by_category(columns))

        assert len(category_row) == len(column_row) == len(columns)
        assert category_row[0] == "Basic Info"
        assert category_row[-5:] == ["Dinner", "", "", "", ""]
        assert column_row[-5:] == ["Attending", "Shuttle", "Pickup", "Event", "Return"]
        assert merges[-1] == (len(columns) - 5, len(columns) - 1)


class TestFormatting:
    def test_values(self):
        projection = sample_projection()
        columns = project_columns(projection.events)
        row = projection.rows[0]

        def formatted(column_id):
            column = find_column(columns, column_id)
            return format_export_value(cell_value(row, column), column, projection.meal_lookup)

        assert formatted("email_valid") == "Yes"
        assert formatted("guest_type") == "Maid Of Honor"
        assert formatted("rsvp_deadline") == "2026-05-01"
        assert formatted("main_choice") == "Fish"
        assert formatted("table_position") == 3
        assert formatted("phone") == ""

    def test_unknown_meal_option(self):
        column = find_column(project_columns([]), "starter_choice")
        assert format_export_value(4, column, {"starter": {}}) == "Option 4"


class TestWriters:
    def test_xlsx_layout(self):
        projection = sample_projection()
        columns = project_columns(projection.events)
        stream = io.BytesIO()

        write_xlsx(columns, projection.rows, stream, projection.meal_lookup)

        stream.seek(0)
        sheet = load_workbook(stream).active
        assert sheet.title == "Guests"
        assert sheet.freeze_panes == "A3"
        assert sheet.max_row == 3
        assert sheet.max_column == len(columns)

        headers = [cell.value for cell in sheet[2]]
        values = dict(zip(headers, [cell.value for cell in sheet[3]]))
        assert values["Name"] == "Annabel"
        assert values["Main"] == "Fish"
        assert values["Attending"] == "Yes"
        assert values["Event"] == "Grand Hall, 6:30 PM"

        merged = {str(cell_range) for cell_range in sheet.merged_cells.ranges}
        first, last = get_column_letter(len(columns) - 4), get_column_letter(len(columns))
        assert f"{first}1:{last}1" in merged
        assert sheet.cell(row=1, column=len(columns) - 4).value == "Reception"

    def test_csv_has_both_header_rows(self):
        projection = sample_projection()
        columns = project_columns(projection.events)
        stream = io.StringIO()

        write_csv(columns, projection.rows, stream, projection.meal_lookup)

        lines = list(csv.reader(io.StringIO(stream.getvalue())))
        assert len(lines) == 3
        assert lines[0][0] == "Basic Info"
        assert lines[1][0] == "Name"
        assert lines[2][0] == "Annabel"


class TestFilename:
    def test_filename(self):
        assert (
            export_filename("Anna", "Ben", date(2026, 3, 7))
            == "GuestsDetails_Anna-Ben Wedding_07-Mar-26.xlsx"
        )

    def test_unsafe_characters_replaced(self):
        assert export_filename("A/B", "C", date(2026, 12, 25), "csv") == "GuestsDetails_A_B-C Wedding_25-Dec-26.csv"

    def test_content_disposition_keeps_non_ascii_names(self):
        header = content_disposition("GuestsDetails_Łucja-Zoë Wedding_07-Mar-26.xlsx")

        header.encode("latin-1")
        assert 'filename="GuestsDetails_ucja-Zoe Wedding_07-Mar-26.xlsx"' in header
        assert "filename*=UTF-8''GuestsDetails_%C5%81ucja-Zo%C3%AB%20Wedding_07-Mar-26.xlsx" in header
