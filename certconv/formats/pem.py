import re
from typing import List

BEGIN_CERT = b"-----BEGIN CERTIFICATE-----"
END_CERT = b"-----END CERTIFICATE-----"

# whole-line private key and public key headers
PRIVATE_KEY_HEADER = re.compile(r"^-----BEGIN (RSA |EC |ENCRYPTED )?PRIVATE KEY-----$")
PUBLIC_KEY_HEADER = re.compile(r"^-----BEGIN (RSA )?PUBLIC KEY-----$")
CERT_MARKER = "BEGIN CERTIFICATE"


def iter_blocks(data: bytes, begin: bytes, end: bytes) -> List[bytes]:
    blocks: List[bytes] = []
    i = 0
    while True:
        s = data.find(begin, i)
        if s == -1:
            break
        e = data.find(end, s)
        if e == -1:
            break
        e2 = e + len(end)
        blocks.append(data[s:e2])
        i = e2
    return blocks


def normalize_payload(text: str) -> str:
    """Base64 body of every PEM block with armor lines and whitespace removed."""
    out: List[str] = []
    in_payload = False
    for line in text.split("\n"):
        line = line.strip()
        if line.startswith("-----BEGIN "):
            in_payload = True
            continue
        if line.startswith("-----END "):
            in_payload = False
            continue
        if not in_payload or not line:
            continue
        out.append(line)
    return "".join(out)
