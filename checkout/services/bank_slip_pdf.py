"""
Checkout - Serviço de Geração de PDF do Boleto
Gera o boleto para impressão com linha digitável e código de barras (Intercalado 2 de 5)
"""

from io import BytesIO
from datetime import datetime
from decimal import Decimal
from typing import Optional
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm, mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.graphics.barcode.common import I2of5

from checkout.config import settings
from checkout.models.artifact import BankSlipArtifact
from checkout.services.bank_slip import BANKS


def _format_document(document: Optional[str]) -> str:
    if not document:
        return "Não informado"
    if len(document) == 11:
        return f"{document[:3]}.{document[3:6]}.{document[6:9]}-{document[9:]}"
    if len(document) == 14:
        return f"{document[:2]}.{document[2:5]}.{document[5:8]}/{document[8:12]}-{document[12:]}"
    return document


def _format_address(address: Optional[dict]) -> str:
    if not address:
        return "-"
    street = address.get("street", "")
    if address.get("number"):
        street = f"{street}, {address['number']}"
    city = address.get("city", "")
    if address.get("state"):
        city = f"{city}/{address['state']}"
    parts = [street, address.get("neighborhood"), city, address.get("zip_code")]
    return " - ".join(part for part in parts if part)


class BankSlipPDFGenerator:
    """Gerador de PDF de boleto bancário."""

    GRAY = colors.Color(0.53, 0.53, 0.53)  # #888888
    LIGHT_GRAY = colors.Color(0.95, 0.95, 0.95)
    BORDER = colors.Color(0.6, 0.6, 0.6)

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_styles()

    def _setup_styles(self):
        """Configura estilos personalizados."""
        self.styles.add(ParagraphStyle(
            name='BankHeader',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceAfter=4,
        ))

        self.styles.add(ParagraphStyle(
            name='DigitableLine',
            parent=self.styles['Normal'],
            fontName='Helvetica-Bold',
            fontSize=12,
            alignment=TA_RIGHT,
        ))

        self.styles.add(ParagraphStyle(
            name='SectionLabel',
            parent=self.styles['Normal'],
            textColor=self.GRAY,
            fontSize=8,
        ))

        self.styles.add(ParagraphStyle(
            name='Footer',
            parent=self.styles['Normal'],
            textColor=self.GRAY,
            fontSize=8,
            alignment=TA_CENTER,
        ))

    def _header(self, artifact: BankSlipArtifact) -> Table:
        bank_code = artifact.barcode[:3]
        bank_name = BANKS.get(bank_code, "Banco")
        header = Table(
            [[
                Paragraph(f"{bank_name} | {bank_code}-9", self.styles['BankHeader']),
                Paragraph(artifact.digitable_line, self.styles['DigitableLine']),
            ]],
            colWidths=[6*cm, 11*cm],
        )
        header.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LINEBELOW', (0, 0), (-1, 0), 1.5, colors.black),
        ]))
        return header

    def generate(self, artifact: BankSlipArtifact, issued_at: Optional[datetime] = None) -> bytes:
        """
        Gera o PDF do boleto.

        Args:
            artifact: Boleto persistido da transação
            issued_at: Data de emissão (padrão: agora)

        Returns:
            PDF em bytes
        """
        issued_at = issued_at or datetime.utcnow()
        amount = Decimal(artifact.amount)

        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm,
        )

        elements = []

        # Recibo do pagador
        elements.append(Paragraph("Recibo do Pagador", self.styles['SectionLabel']))
        elements.append(self._header(artifact))
        elements.append(Spacer(1, 0.3*cm))

        slip_data = [
            ['Beneficiário', settings.BANK_SLIP_BENEFICIARY_NAME, 'CPF/CNPJ',
             _format_document(settings.BANK_SLIP_BENEFICIARY_DOCUMENT)],
            ['Pagador', artifact.customer_name or '-', 'CPF/CNPJ',
             _format_document(artifact.customer_document)],
            ['Endereço', _format_address(artifact.customer_address), '', ''],
            ['Nosso Número', artifact.our_number, 'Número do Documento', artifact.slip_number],
            ['Data de Emissão', issued_at.strftime('%d/%m/%Y'), 'Vencimento',
             artifact.due_date.strftime('%d/%m/%Y')],
            ['Agência/Conta', f"{settings.BANK_SLIP_AGENCY}/{settings.BANK_SLIP_ACCOUNT}",
             'Valor do Documento', f'R$ {amount:,.2f}'],
        ]

        slip_table = Table(slip_data, colWidths=[3*cm, 6.5*cm, 3.5*cm, 4*cm])
        slip_table.setStyle(TableStyle([
            ('TEXTCOLOR', (0, 0), (0, -1), self.GRAY),
            ('TEXTCOLOR', (2, 0), (2, -1), self.GRAY),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
            ('FONTNAME', (1, 0), (1, -1), 'Helvetica-Bold'),
            ('FONTNAME', (3, 0), (3, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('SPAN', (1, 2), (3, 2)),
            ('BACKGROUND', (2, 4), (3, 5), self.LIGHT_GRAY),
            ('GRID', (0, 0), (-1, -1), 0.5, self.BORDER),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
        ]))
        elements.append(slip_table)
        elements.append(Spacer(1, 0.4*cm))

        instructions = [
            "Após o vencimento cobrar multa de 2% e juros de 1% ao mês (pro rata die).",
            f"Não receber após {settings.BANK_SLIP_EXPIRES_AFTER_DAYS} dias do vencimento.",
        ]
        elements.append(Paragraph("Instruções", self.styles['SectionLabel']))
        for line in instructions:
            elements.append(Paragraph(line, self.styles['Normal']))
        elements.append(Spacer(1, 1*cm))

        # Ficha de compensação
        elements.append(Paragraph("Ficha de Compensação", self.styles['SectionLabel']))
        elements.append(self._header(artifact))
        elements.append(Spacer(1, 0.5*cm))

        # O DV já faz parte das 44 posições
        elements.append(I2of5(
            artifact.barcode,
            barWidth=0.33*mm,
            ratio=3,
            barHeight=13*mm,
            checksum=0,
            bearers=0,
            quiet=1,
        ))
        elements.append(Spacer(1, 1*cm))

        elements.append(Paragraph(
            f"Documento gerado em {issued_at.strftime('%d/%m/%Y às %H:%M:%S')}",
            self.styles['Footer']
        ))

        # Gerar PDF
        doc.build(elements)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        return pdf_bytes


# Instância global
bank_slip_pdf_generator = BankSlipPDFGenerator()
