"""
Static ICD-10 catalogue used by the clinical record diagnosis picker.

Only the codes in daily use at the hospital are listed; the full WHO
table is not needed for search-as-you-type.
"""
from typing import NamedTuple

MIN_QUERY_LENGTH = 2
MAX_RESULTS = 20


class ICD10Code(NamedTuple):
    code: str
    description: str
    category: str


_CODES = [
    ('A00.0', 'Cólera debida a Vibrio cholerae 01, biovar cholerae', 'A'),
    ('A00.1', 'Cólera debida a Vibrio cholerae 01, biovar eltor', 'A'),
    ('A01.0', 'Fiebre tifoidea', 'A'),
    ('A02.0', 'Salmonelosis intestinal', 'A'),
    ('A03.0', 'Shigelosis por Shigella dysenteriae', 'A'),
    ('A04.5', 'Enteritis por Campylobacter', 'A'),
    ('A08.0', 'Enteritis viral', 'A'),
    ('A09', 'Otras gastroenteritis y colitis', 'A'),
    ('B00.0', 'Eczema herpético', 'B'),
    ('B01.0', 'Varicela meningitis', 'B'),
    ('B02.0', 'Encefalitis herpes zoster', 'B'),
    ('B20.0', 'Enfermedad por VIH con enfermedades infecciosas', 'B'),
    ('C00.0', 'Tumor maligno del labio inferior', 'C'),
    ('C50.9', 'Tumor maligno de mama, no especificado', 'C'),
    ('C61.9', 'Tumor maligno de prostata, no especificado', 'C'),
    ('D50.9', 'Anemia por deficiencia de hierro, no especificada', 'D'),
    ('D64.9', 'Anemia, no especificada', 'D'),
    ('E10.9', 'Diabetes mellitus tipo 1 sin complicaciones', 'E'),
    ('E11.9', 'Diabetes mellitus tipo 2 sin complicaciones', 'E'),
    ('E66.0', 'Obesidad debida a exceso de calorías', 'E'),
    ('E78.0', 'Hipercolesterolemia pura', 'E'),
    ('E78.5', 'Hipertrigliceridemia', 'E'),
    ('F32.0', 'Episodio depresivo leve', 'F'),
    ('F32.1', 'Episodio depresivo moderado', 'F'),
    ('F33.0', 'Trastorno depresivo recurrente, episodio actual leve', 'F'),
    ('F41.0', 'Trastorno de pánico', 'F'),
    ('F41.1', 'Trastorno de ansiedad generalizada', 'F'),
    ('G40.9', 'Epilepsia, no especificada', 'G'),
    ('G43.9', 'Migraña, no especificada', 'G'),
    ('G44.1', 'Cefalea vascular', 'G'),
    ('G45.9', 'Enfermedad cerebrovascular, no especificada', 'G'),
    ('H10.9', 'Conjuntivitis, no especificada', 'H'),
    ('H25.9', 'Catarata senil, no especificada', 'H'),
    ('I10', 'Hipertensión esencial', 'I'),
    ('I11.9', 'Enfermedad cardíaca hipertensiva sin insuficiencia cardíaca', 'I'),
    ('I20.0', 'Angina de pecho inestable', 'I'),
    ('I21.3', 'Infarto agudo de miocardio', 'I'),
    ('I48.0', 'Fibrilación auricular paroxística', 'I'),
    ('I50.9', 'Insuficiencia cardíaca, no especificada', 'I'),
    ('J00', 'Rinitis aguda', 'J'),
    ('J01.9', 'Sinusitis aguda, no especificada', 'J'),
    ('J02.0', 'Faringitis estreptocócica', 'J'),
    ('J03.9', 'Amigdalitis aguda, no especificada', 'J'),
    ('J04.1', 'Laringitis aguda', 'J'),
    ('J06.9', 'Infección respiratoria aguda, no especificada', 'J'),
    ('J10.0', 'Gripe con neumonía', 'J'),
    ('J11.0', 'Gripe con neumonía, virus no identificado', 'J'),
    ('J18.9', 'Neumonía, no especificada', 'J'),
    ('J20.9', 'Bronquitis aguda, no especificada', 'J'),
    ('J40', 'Bronquitis, no especificada como aguda o crónica', 'J'),
    ('J44.9', 'Enfermedad pulmonar obstructiva crónica, no especificada', 'J'),
    ('J45.9', 'Asma, no especificada', 'J'),
    ('K08.1', 'Pérdida de dientes', 'K'),
    ('K21.0', 'Enfermedad por reflujo gastroesofágico con esofagitis', 'K'),
    ('K29.7', 'Gastritis, no especificada', 'K'),
    ('K30', 'Dispepsia', 'K'),
    ('K35.2', 'Apendicitis aguda con peritonitis generalizada', 'K'),
    ('K50.0', 'Enfermedad de Crohn del intestino delgado', 'K'),
    ('K51.9', 'Colitis ulcerosa, no especificada', 'K'),
    ('K57.2', 'Enfermedad diverticular del colon con perforación', 'K'),
    ('K80.2', 'Cálculos biliares con otras colecistitis', 'K'),
    ('K81.9', 'Colecistitis, no especificada', 'K'),
    ('K85.9', 'Pancreatitis aguda, no especificada', 'K'),
    ('L20.9', 'Dermatitis atópica, no especificada', 'L'),
    ('L23.9', 'Dermatitis alérgica de contacto, no especificada', 'L'),
    ('L30.9', 'Dermatitis, no especificada', 'L'),
    ('L70.9', 'Acné, no especificado', 'L'),
    ('M16.9', 'Artrosis de cadera, no especificada', 'M'),
    ('M17.9', 'Artrosis de rodilla, no especificada', 'M'),
    ('M25.5', 'Dolor articular', 'M'),
    ('M54.5', 'Lumbago', 'M'),
    ('M79.1', 'Mialgia', 'M'),
    ('M79.6', 'Dolor en extremidad', 'M'),
    ('N10', 'Nefritis tubulointersticial aguda', 'N'),
    ('N30.0', 'Cistitis aguda', 'N'),
    ('N34.1', 'Uretritis no especificada', 'N'),
    ('N39.0', 'Infección de vías urinarias, no especificada', 'N'),
    ('N40', 'Hiperplasia de prostata', 'N'),
    ('N63', 'Masa mamaria no especificada', 'N'),
    ('N89.9', 'Trastorno vaginal no especificado', 'N'),
    ('O09.0', 'Supervisión de embarazo molar', 'O'),
    ('O09.1', 'Supervisión de embarazo ectópico', 'O'),
    ('Q90.9', 'Síndrome de Down, no especificado', 'Q'),
    ('R05', 'Tos', 'R'),
    ('R06.0', 'Disnea', 'R'),
    ('R10.9', 'Dolor abdominal, no especificado', 'R'),
    ('R11.0', 'Náuseas', 'R'),
    ('R11.1', 'Vómito', 'R'),
    ('R21', 'Erupción cutánea', 'R'),
    ('R50.9', 'Fiebre, no especificada', 'R'),
    ('R51', 'Cefalea', 'R'),
    ('R53', 'Malestar y fatiga', 'R'),
    ('S01.0', 'Herida del cuero cabelludo', 'S'),
    ('S61.9', 'Herida de dedo(s) de la mano', 'S'),
    ('Z00.0', 'Examen general médico', 'Z'),
    ('Z00.1', 'Examen de recepción y empleo', 'Z'),
    ('Z00.6', 'Examen para comparación con población normal', 'Z'),
    ('Z30.2', 'Esterilización (mujer)', 'Z'),
    ('Z71.3', 'Asesoramiento dietético', 'Z'),
    ('Z71.8', 'Otro asesoramiento médico especificado', 'Z'),
    ('Z99.1', 'Dependencia de respirador', 'Z'),
]

CATALOG: list[ICD10Code] = [ICD10Code(*row) for row in _CODES]


def search(query: str, limit: int = MAX_RESULTS) -> list[dict]:
    """Case-insensitive match on code or description.

    Queries shorter than two characters return nothing.
    """
    q = (query or '').strip().lower()
    if len(q) < MIN_QUERY_LENGTH:
        return []
    hits = [c for c in CATALOG if q in c.code.lower() or q in c.description.lower()]
    return [c._asdict() for c in hits[:limit]]
