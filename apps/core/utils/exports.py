import csv
from io import BytesIO, StringIO

from PIL import Image, ImageDraw
from django.http import HttpResponse


EXPORT_TYPES = ('csv', 'pdf')

PAGE_WIDTH = 1800
ROWS_PER_PAGE = 40
ROW_HEIGHT = 44
HEADER_HEIGHT = 60
TITLE_HEIGHT = 80
CELL_TEXT_LIMIT = 35


def rows_to_csv_bytes(headers, rows, title=None):
    output = StringIO()
    writer = csv.writer(output)
    if title:
        writer.writerow([title])
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return output.getvalue().encode('utf-8')


def _draw_page(*, title, subtitle, headers, rows):
    visible_rows = max(1, len(rows))
    height = TITLE_HEIGHT + HEADER_HEIGHT + visible_rows * ROW_HEIGHT + 30

    image = Image.new('RGB', (PAGE_WIDTH, height), 'white')
    draw = ImageDraw.Draw(image)

    draw.text((20, 15), title, fill='black')
    if subtitle:
        draw.text((20, 45), subtitle, fill='black')

    col_width = (PAGE_WIDTH - 40) // max(1, len(headers))

    y = TITLE_HEIGHT
    for idx, header in enumerate(headers):
        x1 = 20 + idx * col_width
        draw.rectangle((x1, y, x1 + col_width, y + HEADER_HEIGHT), outline='black')
        draw.text((x1 + 6, y + 18), str(header), fill='black')

    y += HEADER_HEIGHT
    for row in rows:
        for idx, value in enumerate(row):
            x1 = 20 + idx * col_width
            draw.rectangle((x1, y, x1 + col_width, y + ROW_HEIGHT), outline='black')
            text = '' if value is None else str(value)
            if len(text) > CELL_TEXT_LIMIT:
                text = text[:CELL_TEXT_LIMIT - 3] + '...'
            draw.text((x1 + 6, y + 14), text, fill='black')
        y += ROW_HEIGHT

    return image


def table_pdf_bytes(title, headers, rows, subtitle=''):
    rows = list(rows)
    chunks = [rows[i:i + ROWS_PER_PAGE] for i in range(0, len(rows), ROWS_PER_PAGE)] or [[]]
    pages = [
        _draw_page(title=title, subtitle=subtitle, headers=headers, rows=chunk)
        for chunk in chunks
    ]

    output = BytesIO()
    pages[0].save(output, format='PDF', save_all=True, append_images=pages[1:])
    return output.getvalue()


def export_response(*, title, headers, rows, filename_base, export_type, subtitle=''):
    """Returns a download response, or ``None`` when no export was requested."""
    if export_type == 'csv':
        content = rows_to_csv_bytes(headers, rows, title=title)
        response = HttpResponse(content, content_type='text/csv')
        response['Content-Disposition'] = f'attachment; filename="{filename_base}.csv"'
        return response

    if export_type == 'pdf':
        content = table_pdf_bytes(title=title, headers=headers, rows=rows, subtitle=subtitle)
        response = HttpResponse(content, content_type='application/pdf')
        response['Content-Disposition'] = f'attachment; filename="{filename_base}.pdf"'
        return response

    return None
