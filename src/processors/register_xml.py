import xml.etree.ElementTree as ET
from xml.dom import minidom
from pathlib import Path
from typing import List, Optional
from models.filing import ArtifactType, FilingArtifact
from config.settings import OUTPUT_DIR, COMPANY_NAME, COMPANY_TAX_ID


class WithholdingRegisterXML:
    """
    Write the withholding-slip register (bukti potong PPh 23 / PPh 26) of one
    company and period as an XML document for upload to the tax portal.
    """

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else OUTPUT_DIR / "tax_forms"
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def render(self, slips: List[FilingArtifact], company_id: str, period: str) -> str:
        """Return the register as a pretty-printed XML string"""
        for slip in slips:
            if slip.artifact_type != ArtifactType.WITHHOLDING_SLIP:
                raise ValueError(f"Expected withholding slips, got {slip.artifact_type.value}")

        root = ET.Element('BuktiPotongRegister')
        root.set('version', '1.0')

        # Withholding agent
        pemotong = ET.SubElement(root, 'Pemotong')
        ET.SubElement(pemotong, 'NPWP').text = COMPANY_TAX_ID
        ET.SubElement(pemotong, 'Nama').text = COMPANY_NAME
        ET.SubElement(pemotong, 'KodePerusahaan').text = company_id

        masa = ET.SubElement(root, 'MasaPajak')
        year, month = period.split('-')
        ET.SubElement(masa, 'Tahun').text = year
        ET.SubElement(masa, 'Bulan').text = str(int(month))

        gross_total = 0
        tax_total = 0
        daftar = ET.SubElement(root, 'DaftarBuktiPotong')
        for slip in sorted(slips, key=lambda s: s.payload['slip_number']):
            payload = slip.payload
            bukti = ET.SubElement(daftar, 'BuktiPotong')
            bukti.set('nomor', payload['slip_number'])
            bukti.set('jenis', f"PPh{payload['form_code']}")
            ET.SubElement(bukti, 'IdPenerima').text = payload['payee_id']
            ET.SubElement(bukti, 'NamaPenerima').text = payload['payee_name']
            ET.SubElement(bukti, 'NPWPPenerima').text = payload['tax_id'] or '-'
            for line in payload['lines']:
                objek = ET.SubElement(bukti, 'ObjekPajak')
                ET.SubElement(objek, 'JenisPenghasilan').text = line['income_type']
                ET.SubElement(objek, 'Referensi').text = line['reference']
                ET.SubElement(objek, 'PenghasilanBruto').text = str(line['gross_amount'])
                ET.SubElement(objek, 'Tarif').text = line['rate']
                ET.SubElement(objek, 'PPhDipotong').text = str(line['tax_withheld'])
            ET.SubElement(bukti, 'JumlahBruto').text = str(payload['gross_total'])
            ET.SubElement(bukti, 'JumlahPPh').text = str(payload['tax_total'])
            gross_total += payload['gross_total']
            tax_total += payload['tax_total']

        ringkasan = ET.SubElement(root, 'Ringkasan')
        ET.SubElement(ringkasan, 'JumlahBuktiPotong').text = str(len(slips))
        ET.SubElement(ringkasan, 'TotalBruto').text = str(gross_total)
        ET.SubElement(ringkasan, 'TotalPPh').text = str(tax_total)

        return self._prettify_xml(root)

    def generate(self, slips: List[FilingArtifact], company_id: str, period: str) -> str:
        """Write the register to disk and return the file path"""
        xml_str = self.render(slips, company_id, period)

        safe_company_id = company_id.replace('/', '-').replace('\\', '-')
        filename = f"bupot_register_{safe_company_id}_{period}.xml"
        filepath = self.output_dir / filename

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(xml_str)

        return str(filepath)

    def _prettify_xml(self, elem):
        """Return a pretty-printed XML string"""
        rough_string = ET.tostring(elem, encoding='unicode')
        reparsed = minidom.parseString(rough_string)
        return reparsed.toprettyxml(indent="  ")
