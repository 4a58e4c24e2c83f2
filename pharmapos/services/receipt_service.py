"""Receipt service - receipt payloads and printable PDF receipts for orders."""

from io import BytesIO
from typing import Any, Dict

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from pharmapos.models import Order
from pharmapos.services.order_service import WALK_IN_CUSTOMER
from pharmapos.utils.formatters import money, money_display, iso

PAYMENT_LABELS = {
    'cash': 'Cash',
    'card': 'Card',
    'upi': 'UPI',
    'bank_transfer': 'Bank Transfer',
    'credit': 'Credit',
}


def build_receipt(order: Order, include_profit: bool = False) -> Dict[str, Any]:
    """Receipt payload for an order; profit only when the caller may see it."""
    receipt = {
        'order_id': order.id,
        'order_number': order.order_number,
        'date': iso(order.completed_at or order.created_at),
        'customer_name': order.customer_name or WALK_IN_CUSTOMER,
        'customer_phone': order.customer_phone,
        'items': [
            {
                'name': item.medicine.name if item.medicine else None,
                'batch_number': item.medicine.batch_number if item.medicine else None,
                'quantity': item.quantity,
                'unit_price': money(item.unit_price),
                'discount_percent': money(item.discount_percent),
                'gst_amount': money(item.gst_amount),
                'total': money(item.total_price),
            }
            for item in order.items
        ],
        'subtotal': money(order.subtotal),
        'tax_amount': money(order.tax_amount),
        'discount': money(order.discount),
        'total_amount': money(order.total_amount),
        'amount_paid': money(order.amount_paid),
        'amount_due': money(order.amount_due),
        'payment_method': order.payment_method,
        'payment_status': order.payment_status,
        'status': order.status,
    }
    if include_profit:
        receipt['profit'] = money(order.profit)
    return receipt


def _pdf_symbol(symbol: str) -> str:
    # The built-in Helvetica font has no rupee glyph
    return 'Rs. ' if symbol == '₹' else symbol


def render_receipt_pdf(order: Order, business_info: Dict[str, Any]) -> BytesIO:
    """
    Render an A4 receipt with ReportLab.

    business_info keys: name, address, phone, email, currency_symbol.
    Profit never appears on a printed receipt.
    """
    receipt = build_receipt(order, include_profit=False)
    symbol = _pdf_symbol(business_info.get('currency_symbol', ''))

    def fmt(value):
        return money_display(value, symbol)

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReceiptTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'ReceiptHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Business header
    elements.append(Paragraph("RECEIPT", title_style))
    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{business_info['name']}</b>", header_style))
    if business_info.get('address'):
        elements.append(Paragraph(business_info['address'], header_style))

    contact_parts = []
    if business_info.get('phone'):
        contact_parts.append(f"Tel: {business_info['phone']}")
    if business_info.get('email'):
        contact_parts.append(f"Email: {business_info['email']}")
    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Order metadata
    issued = order.completed_at or order.created_at
    info_data = [
        ['Order No:', receipt['order_number']],
        ['Date:', issued.strftime('%d/%m/%Y %H:%M') if issued else '-'],
        ['Customer:', receipt['customer_name']],
    ]
    if receipt['customer_phone']:
        info_data.append(['Phone:', receipt['customer_phone']])
    info_data.append(['Payment:', PAYMENT_LABELS.get(order.payment_method, 'Pending')])

    info_table = Table(info_data, colWidths=[2*inch, 3*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    table_data = [['Medicine', 'Qty', 'Price', 'Disc %', 'GST', 'Total']]
    for item in receipt['items']:
        table_data.append([
            item['name'] or '-',
            str(item['quantity']),
            fmt(item['unit_price']),
            f"{item['discount_percent']:.2f}",
            fmt(item['gst_amount']),
            fmt(item['total']),
        ])

    items_table = Table(table_data, colWidths=[2.6*inch, 0.6*inch, 1*inch, 0.7*inch, 0.8*inch, 1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#16A085')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('ALIGN', (1, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_data = [
        ['Subtotal:', fmt(receipt['subtotal'])],
        ['GST:', fmt(receipt['tax_amount'])],
    ]
    if receipt['discount']:
        totals_data.append(['Discount:', f"-{fmt(receipt['discount'])}"])
    totals_data.append(['TOTAL:', fmt(receipt['total_amount'])])
    if receipt['amount_due']:
        totals_data.append(['Amount due:', fmt(receipt['amount_due'])])

    total_row = len(totals_data) - (2 if receipt['amount_due'] else 1)
    totals_table = Table(totals_data, colWidths=[5.7*inch, 1*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, total_row), (-1, total_row), 'Helvetica-Bold'),
        ('FONTSIZE', (0, total_row), (-1, total_row), 13),
        ('TEXTCOLOR', (0, total_row), (-1, total_row), colors.HexColor('#27AE60')),
        ('LINEABOVE', (0, total_row), (-1, total_row), 1, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9,
                                  textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    elements.append(Paragraph("Thank you for your purchase. Please keep this receipt.", footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
