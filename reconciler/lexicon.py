"""
Field-name normalization for headers coming from different institutions.

Source files rarely agree on column names ("Avg Balance", "CUR_BAL",
"Principal Outstanding"), so code that needs "the balance column" looks it up
by intent: the requested name is stemmed with a trimmed Porter stemmer and
matched against the headers, falling back to banking synonym groups.
"""

import re

# Banking vocabulary: a field matching any entry of a group may resolve to a
# header containing any other entry of that group.
SYNONYM_GROUPS = [
    ['fee', 'charge', 'cost', 'duty', 'collection', 'levy', 'assessment', 'imposition', 'surcharge',
     'service fee', 'commission', 'toll', 'premium', 'tariff'],
    ['open', 'term', 'origination', 'start', 'create', 'establish', 'setup', 'initiate', 'commence',
     'activate', 'launch', 'inception', 'beginning', 'provenance'],
    ['checking', 'dda', 'demand deposit', 'share', 'current account', 'transaction account', 'share draft'],
    ['savings', 'money market', 'thrift', 'deposit account', 'share savings'],
    ['withdrawal', 'check', 'draft', 'debit', 'payout', 'disbursement', 'deduction', 'cash out'],
    ['deposit', 'credit', 'payment', 'fund', 'lodge', 'add funds', 'contribution'],
    ['certificate', 'cd', 'cod', 'certificate of deposit', 'time deposit', 'term deposit', 'fixed deposit'],
    ['owner', 'responsibility', 'officer', 'holder', 'proprietor', 'account holder', 'signatory'],
    ['type', 'classification', 'class', 'category', 'kind', 'variety'],
    ['location', 'branch', 'office', 'site', 'outlet', 'region'],
    ['principal', 'balance', 'outstanding', 'capital', 'remaining amount', 'unpaid portion'],
    ['balance', 'funds on deposit', 'available funds', 'funds'],
    ['interest', 'finance charge', 'rate', 'accrued interest', 'return', 'yield'],
    ['loan', 'credit facility', 'mortgage', 'financing', 'advance', 'lending'],
    ['account', 'bank account', 'ledger', 'record', 'customer account'],
    ['statement', 'bank statement', 'account statement', 'summary', 'transaction record'],
    ['overdraft', 'negative balance', 'overdrawn account', 'shortfall', 'deficit'],
    ['wire transfer', 'electronic funds transfer', 'EFT', 'bank wire', 'remittance', 'telegraphic transfer',
     'wires'],
]

IRREGULARS = {
    'running': 'run',
    'ran': 'run',
    'swimming': 'swim',
    'swam': 'swim',
    'taking': 'take',
    'took': 'take',
    'gone': 'go',
    'went': 'go',
    'being': 'be',
    'was': 'be',
    'were': 'be',
    'having': 'have',
    'had': 'have',
    'fees': 'fee',
    'responsibility': 'resp',
}

STEP2_REPLACEMENTS = [
    ('ational', 'ate'),
    ('tional', 'tion'),
    ('enci', 'ence'),
    ('anci', 'ance'),
    ('izer', 'ize'),
    ('bli', 'ble'),
    ('alli', 'al'),
    ('entli', 'ent'),
    ('eli', 'e'),
    ('ousli', 'ous'),
    ('ization', 'ize'),
    ('ation', 'ate'),
    ('ator', 'ate'),
    ('alism', 'al'),
    ('iveness', 'ive'),
    ('fulness', 'ful'),
    ('ousness', 'ous'),
    ('aliti', 'al'),
    ('iviti', 'ive'),
    ('biliti', 'ble'),
    ('logi', 'log'),
]

STEP3_REPLACEMENTS = [
    ('icate', 'ic'),
    ('ative', ''),
    ('alize', 'al'),
    ('iciti', 'ic'),
    ('ical', 'ic'),
    ('ful', ''),
    ('ness', ''),
]

STEP4_SUFFIXES = [
    'al', 'ance', 'ence', 'er', 'ic', 'able', 'ible', 'ant',
    'ement', 'ment', 'ent', 'ou', 'ism', 'ate', 'iti', 'ous', 'ive', 'ize',
]

_CVC = re.compile(r'^.*[^aeiou][aeiouy][^aeiouy]$')
_DOUBLE_END = re.compile(r'(.)\1$')


def measure(st):
    """Count vowel-consonant transitions (Porter's m) in a stem."""
    form = re.sub(r'[^aeiouy]+', 'C', st)
    form = re.sub(r'[aeiouy]+', 'V', form)
    return form.count('VC')


def _has_vowel(st):
    return re.search(r'[aeiouy]', st) is not None


def _fix_suffix_removal(word):
    # Post-processing after dropping -ed / -ing
    if word.endswith(('at', 'bl', 'iz')):
        return word + 'e'
    if _DOUBLE_END.search(word):
        return word[:-1]
    if measure(word) == 1 and _CVC.match(word):
        return word + 'e'
    return word


def _replace_suffix(word, replacements, min_measure):
    for suffix, replacement in replacements:
        if word.endswith(suffix):
            st = word[:-len(suffix)]
            if measure(st) > min_measure:
                return st + replacement
            return word
    return word


def stem(word):
    """
    Reduce a word to its stem with a trimmed Porter algorithm.

    Irregular forms come from a lookup table, words of two letters or fewer
    are kept, and only the first matching suffix of each step table is
    considered.

    Args:
        word: The word to stem (any case).

    Returns:
        The lower-case stem.
    """
    word = word.lower()

    if word in IRREGULARS:
        return IRREGULARS[word]

    if len(word) <= 2:
        return word

    # Step 1a: plurals
    if word.endswith('sses'):
        word = word[:-2]
    elif word.endswith('ies'):
        word = word[:-3] + 'i'
    elif word.endswith('ss'):
        pass
    elif word.endswith('s'):
        if _has_vowel(word[:-1]):
            word = word[:-1]

    # Step 1b: -ed / -ing
    if word.endswith('ed'):
        if _has_vowel(word[:-2]):
            word = _fix_suffix_removal(word[:-2])
    elif word.endswith('ing'):
        if _has_vowel(word[:-3]):
            word = _fix_suffix_removal(word[:-3])

    # Step 1c: y -> i
    if word.endswith('y') and _has_vowel(word[:-1]):
        word = word[:-1] + 'i'

    word = _replace_suffix(word, STEP2_REPLACEMENTS, 0)
    word = _replace_suffix(word, STEP3_REPLACEMENTS, 0)
    word = _replace_suffix(word, [(suffix, '') for suffix in STEP4_SUFFIXES], 1)

    # Step 5: trailing e, then ll -> l
    if word.endswith('e'):
        st = word[:-1]
        m = measure(st)
        if m > 1 or (m == 1 and not _CVC.match(st)):
            word = st

    if measure(word) > 1 and word.endswith('ll'):
        word = word[:-1]

    return word


_stemmed_groups = None


def stemmed_synonym_groups():
    """Return SYNONYM_GROUPS with every entry stemmed, computed once."""
    global _stemmed_groups
    if _stemmed_groups is None:
        _stemmed_groups = [[stem(synonym) for synonym in group] for group in SYNONYM_GROUPS]
    return _stemmed_groups


def resolve_field(headers, field_name, strict=False):
    """
    Find the header that best matches a field name.

    A "source.field" name is reduced to "field", stripped of non-alphanumerics
    and stemmed. The first header containing the stem wins. Otherwise, unless
    strict, the first synonym group containing the stem is used and the first
    header containing any of that group's stems wins.

    Args:
        headers: Candidate header names, in priority order.
        field_name: The requested field, e.g. "loan.balance" or "NSF".
        strict: Skip the synonym fallback.

    Returns:
        The matching header, or None when nothing matches.
    """
    clean_field = field_name.split('.')[1] if '.' in field_name else field_name
    clean_field = re.sub(r'[^a-zA-Z0-9]', '', clean_field)

    headers = list(headers)
    headers_lower = [str(h).lower() for h in headers]
    stemmed_field = stem(clean_field.lower())

    for header, header_lower in zip(headers, headers_lower):
        if stemmed_field in header_lower:
            return header

    if not strict:
        for synonyms in stemmed_synonym_groups():
            if stemmed_field not in synonyms:
                continue
            for header, header_lower in zip(headers, headers_lower):
                if any(synonym in header_lower for synonym in synonyms):
                    return header

    return None
