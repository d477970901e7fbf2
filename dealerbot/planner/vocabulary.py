"""Fixed vocabularies used by the intent classifier."""

from __future__ import annotations

BRANDS: dict[str, str] = {
    "chevrolet": "CHEVROLET",
    "gm": "CHEVROLET",
    "volkswagen": "VOLKSWAGEN",
    "vw": "VOLKSWAGEN",
    "fiat": "FIAT",
    "ford": "FORD",
    "honda": "HONDA",
    "toyota": "TOYOTA",
    "hyundai": "HYUNDAI",
    "nissan": "NISSAN",
    "renault": "RENAULT",
    "jeep": "JEEP",
    "citroen": "CITROEN",
    "citroën": "CITROEN",
    "peugeot": "PEUGEOT",
    "kia": "KIA",
    "mitsubishi": "MITSUBISHI",
    "bmw": "BMW",
    "mercedes": "MERCEDES-BENZ",
    "audi": "AUDI",
    "volvo": "VOLVO",
    "subaru": "SUBARU",
    "suzuki": "SUZUKI",
    "chery": "CAOA CHERY",
    "caoa": "CAOA CHERY",
    "jac": "JAC",
    "byd": "BYD",
    "gwm": "GWM",
    "ram": "RAM",
    "dodge": "DODGE",
    "mini": "MINI",
    "land rover": "LAND ROVER",
    "porsche": "PORSCHE",
    "jaguar": "JAGUAR",
    "alfa romeo": "ALFA ROMEO",
    "lexus": "LEXUS",
}

MODEL_BRANDS: dict[str, str] = {
    # Chevrolet
    "onix": "CHEVROLET", "onix plus": "CHEVROLET", "prisma": "CHEVROLET", "cruze": "CHEVROLET",
    "tracker": "CHEVROLET", "spin": "CHEVROLET", "s10": "CHEVROLET", "equinox": "CHEVROLET",
    "trailblazer": "CHEVROLET", "montana": "CHEVROLET", "cobalt": "CHEVROLET",
    # Volkswagen
    "polo": "VOLKSWAGEN", "gol": "VOLKSWAGEN", "virtus": "VOLKSWAGEN", "t-cross": "VOLKSWAGEN",
    "nivus": "VOLKSWAGEN", "taos": "VOLKSWAGEN", "tiguan": "VOLKSWAGEN", "jetta": "VOLKSWAGEN",
    "amarok": "VOLKSWAGEN", "golf": "VOLKSWAGEN", "voyage": "VOLKSWAGEN", "saveiro": "VOLKSWAGEN",
    "up": "VOLKSWAGEN", "fox": "VOLKSWAGEN", "passat": "VOLKSWAGEN",
    # Fiat
    "argo": "FIAT", "mobi": "FIAT", "cronos": "FIAT", "toro": "FIAT", "strada": "FIAT",
    "pulse": "FIAT", "fastback": "FIAT", "uno": "FIAT", "palio": "FIAT", "siena": "FIAT",
    "doblo": "FIAT",
    # Hyundai
    "hb20": "HYUNDAI", "hb20s": "HYUNDAI", "creta": "HYUNDAI", "tucson": "HYUNDAI",
    "ix35": "HYUNDAI", "azera": "HYUNDAI", "elantra": "HYUNDAI",
    # Ford
    "ka": "FORD", "fiesta": "FORD", "focus": "FORD", "ecosport": "FORD", "ranger": "FORD",
    "bronco": "FORD", "territory": "FORD", "maverick": "FORD", "fusion": "FORD",
    # Toyota
    "corolla": "TOYOTA", "corolla cross": "TOYOTA", "yaris": "TOYOTA", "hilux": "TOYOTA",
    "etios": "TOYOTA", "sw4": "TOYOTA", "rav4": "TOYOTA",
    # Honda
    "civic": "HONDA", "city": "HONDA", "fit": "HONDA", "hr-v": "HONDA", "cr-v": "HONDA",
    "wr-v": "HONDA", "accord": "HONDA",
    # Nissan
    "kicks": "NISSAN", "versa": "NISSAN", "sentra": "NISSAN", "frontier": "NISSAN", "march": "NISSAN",
    # Jeep
    "renegade": "JEEP", "compass": "JEEP", "commander": "JEEP", "wrangler": "JEEP",
    # Renault
    "sandero": "RENAULT", "logan": "RENAULT", "duster": "RENAULT", "captur": "RENAULT",
    "kwid": "RENAULT", "oroch": "RENAULT", "clio": "RENAULT", "kangoo": "RENAULT",
    # Peugeot / Citroen
    "208": "PEUGEOT", "2008": "PEUGEOT", "3008": "PEUGEOT", "5008": "PEUGEOT", "partner": "PEUGEOT",
    "c3": "CITROEN", "c4 cactus": "CITROEN", "aircross": "CITROEN",
    # Mitsubishi
    "l200": "MITSUBISHI", "triton": "MITSUBISHI", "asx": "MITSUBISHI", "outlander": "MITSUBISHI",
    "pajero": "MITSUBISHI",
    # Others
    "sportage": "KIA", "cerato": "KIA", "seltos": "KIA",
    "tiggo": "CAOA CHERY", "tiggo 5x": "CAOA CHERY", "tiggo 7": "CAOA CHERY", "tiggo 8": "CAOA CHERY",
    "rampage": "RAM", "dolphin": "BYD", "song": "BYD", "haval": "GWM",
}

# Longest first so "onix plus" wins over "onix" and "hb20s" over "hb20".
MODELS_BY_LENGTH: tuple[str, ...] = tuple(sorted(MODEL_BRANDS, key=len, reverse=True))

TYPO_CORRECTIONS: dict[str, str] = {
    "onics": "onix",
    "onyx": "onix",
    "hb 20": "hb20",
    "h20": "hb20",
    "t cross": "t-cross",
    "tcross": "t-cross",
    "hrv": "hr-v",
    "crv": "cr-v",
    "wrv": "wr-v",
    "compasss": "compass",
    "compaas": "compass",
    "renegate": "renegade",
    "renegad": "renegade",
    "tigo": "tiggo",
}

SELLER_KEYWORDS = (
    "vendedor", "consultor", "atendente", "humano", "pessoa",
    "falar com", "contato", "ligar", "numero", "número",
    "quero falar", "preciso falar", "me passa", "passa pra",
    "chama alguem", "chama alguém", "chamar",
)

GREETING_KEYWORDS = (
    "oi", "olá", "ola", "opa", "ei", "hey", "eai", "e aí",
    "bom dia", "boa tarde", "boa noite", "tudo bem", "tudo bom",
    "boa", "começar", "iniciar", "menu",
)

COMPLAINT_KEYWORDS = (
    "absurdo", "horrível", "péssimo", "pessimo", "lixo", "vergonha",
    "nunca mais", "reclamar", "reclamação", "problema", "defeito",
    "enganado", "mentira", "enrolando", "demora", "não funciona",
    "nao funciona", "quebrado", "estragado", "insatisfeito",
)

TRADE_IN_KEYWORDS = (
    "aceita", "aceitar", "aceitam", "pegam", "pega na", "pegar",
    "troca", "trocar", "trocam", "tenho um", "tenho uma", "meu carro",
    "minha moto", "avaliar", "avaliação", "quanto vale", "quanto paga",
    "compram", "compraria", "na troca", "como entrada", "dar na troca",
    "vender", "vendo", "vendendo", "quero vender", "preciso vender",
)

APPOINTMENT_KEYWORDS = (
    "agendar", "agendamento", "visita", "visitar", "ir na loja",
    "conhecer a loja", "marcar horário", "marcar horario", "aparecer",
    "passar aí", "ir aí", "vou aí",
)

PRICE_KEYWORDS = (
    "fipe", "tabela fipe", "quanto custa", "qual o valor", "qual valor",
    "preço", "preco", "valor do", "custa quanto", "sai por quanto",
)

STOCK_KEYWORDS = ("estoque", "disponível", "disponivel", "tem carro")

LINK_PATTERNS = (
    r"https?://",
    r"www\.",
    r"instagram\.com",
    r"facebook\.com",
    r"fb\.me",
    r"olx\.",
    r"webmotors\.",
    r"mercadolivre\.",
    r"kavak\.",
    r"mobiauto\.",
    r"autocarro\.",
    r"icarros\.",
)
