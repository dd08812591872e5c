import json
import re
from typing import Any, Dict, Optional

import google.generativeai as genai

from core.config import logger, GEMINI_API_KEY, GEMINI_MODEL

# Configure Gemini
if GEMINI_API_KEY:
    genai.configure(api_key=GEMINI_API_KEY)

PLATFORMS = ("olx", "whatsapp", "instagram", "tiktok")
PROPERTY_FIELDS = ("tipo", "cidade", "bairro", "preco", "area", "quartos", "banheiros", "vagas", "diferenciais")
REQUIRED_PROPERTY_FIELDS = ("tipo", "preco", "cidade")

_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {p: {"type": "STRING"} for p in PLATFORMS},
    "required": list(PLATFORMS),
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class CopyGenerationError(Exception):
    """The model returned nothing usable."""


def normalize_property(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    data = data or {}
    return {f: str(data.get(f) or "").strip() for f in PROPERTY_FIELDS}


def missing_required_fields(prop: Dict[str, str]) -> list[str]:
    return [f for f in REQUIRED_PROPERTY_FIELDS if not (prop.get(f) or "").strip()]


def _agent(profile: Dict[str, Any]) -> tuple[str, str, str]:
    name = str(profile.get("name") or "").strip()
    creci = str(profile.get("creci") or "").strip()
    telefone = str(profile.get("telefone") or "").strip()
    return name, creci, telefone


def contact_block(profile: Dict[str, Any]) -> str:
    name, creci, telefone = _agent(profile)
    return (
        f"📞 Fale agora com {name or 'o corretor'}\n"
        f"🆔 CRECI: {creci or 'Não informado'}\n"
        f"💬 WhatsApp: {telefone or 'A consultar'}"
    )


def build_system_prompt(profile: Dict[str, Any]) -> str:
    name, creci, telefone = _agent(profile)
    return f"""
Você é o melhor copywriter do mercado imobiliário brasileiro. Sua missão é transformar dados técnicos em anúncios magnéticos de alta conversão.

DADOS OBRIGATÓRIOS DO CORRETOR PARA O FINAL DE CADA LEGENDA:
Nome: {name or 'Corretor'}
CRECI: {creci or 'Não informado'}
WhatsApp: {telefone or 'A consultar'}

REGRAS DE OURO:
1. NÃO INCLUA o nome da plataforma no início do texto (Ex: Não comece com "OLX:").
2. Use frameworks de persuasão como AIDA (Atenção, Interesse, Desejo, Ação).
3. Fale de BENEFÍCIOS e ESTILO DE VIDA, não apenas características técnicas.
4. Formatação impecável com quebras de linha estratégicas para facilitar a leitura.
5. Use emojis de forma moderada e elegante.
6. ASSINATURA OBRIGATÓRIA: Todo e qualquer texto gerado DEVE terminar obrigatoriamente com o bloco de contato do corretor.
   Exemplo de formato sugerido:
   "{contact_block(profile)}"
""".strip()


def platform_instructions(platform: str) -> str:
    p = (platform or "").strip().lower()
    if p == "olx":
        return "OLX/ZAP/VIVA: Descrição técnica completa, tom amigável, profissional e informativo. Liste as características principais de forma clara."
    if p == "whatsapp":
        return "WHATSAPP: Texto direto, pessoal e persuasivo. Use bullet points para os destaques. Comece com uma saudação que quebre o gelo. Formate para leitura rápida em telas pequenas."
    if p == "instagram":
        return "INSTAGRAM: Legenda aspiracional, foco na experiência de morar no imóvel. Use parágrafos curtos e hashtags relevantes no final, logo após os dados de contato."
    if p == "tiktok":
        return "TIKTOK: Legenda curta, dinâmica e 'hypada'. Use um gancho forte na primeira frase. CTA focado em comentários ou direct."
    return ""


def build_ads_prompt(prop: Dict[str, str], profile: Dict[str, Any]) -> str:
    structure = "\n".join(f"- {platform_instructions(p)}" for p in PLATFORMS)
    return f"""
{build_system_prompt(profile)}

DADOS DO IMÓVEL:
Tipo: {prop['tipo']} | Cidade: {prop['cidade']} | Bairro: {prop['bairro']} | Valor: {prop['preco']}
Área: {prop['area']} m² | Quartos: {prop['quartos']} | Banheiros: {prop['banheiros']} | Vagas: {prop['vagas']}
Diferenciais: {prop['diferenciais']}

TAREFA: Gere 4 opções de anúncios, uma para cada plataforma abaixo, garantindo que TODAS contenham os dados do corretor no final.

ESTRUTURA DESEJADA:
{structure}

Retorne estritamente um JSON.
""".strip()


def build_single_prompt(platform: str, prop: Dict[str, str], profile: Dict[str, Any]) -> str:
    return f"""
{build_system_prompt(profile)}

DADOS DO IMÓVEL:
{json.dumps(prop, ensure_ascii=False)}

TAREFA: Gere APENAS uma NOVA descrição para a plataforma: {platform.upper()}.
INSTRUÇÃO ESPECÍFICA: {platform_instructions(platform)}

IMPORTANTE: Não esqueça de incluir o Nome, CRECI e WhatsApp do corretor ao final do texto, conforme as regras de ouro definidas no sistema.

Retorne APENAS o texto da descrição final, pronto para uso.
""".strip()


def has_contact_block(text: str, profile: Dict[str, Any]) -> bool:
    """Best-effort check that the agent's contact data closes the text."""
    name, creci, telefone = _agent(profile)
    # Instagram puts hashtags after the contact, so look at a generous tail
    tail = (text or "")[-600:].lower()
    phone = re.sub(r"\D", "", telefone or "")
    if not creci and not phone:
        return (name.lower() if name else "creci") in tail
    if creci and creci.lower() not in tail:
        return False
    # Phone matches on digits alone; formatting varies
    return not phone or phone in re.sub(r"\D", "", tail)


def ensure_contact_block(text: str, profile: Dict[str, Any]) -> str:
    text = (text or "").strip()
    if has_contact_block(text, profile):
        return text
    return f"{text}\n\n{contact_block(profile)}"


def parse_ads(text: str) -> Dict[str, str]:
    raw = _FENCE_RE.sub("", (text or "").strip())
    if not raw:
        raise CopyGenerationError("Empty response from model")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as ex:
        raise CopyGenerationError(f"Model returned invalid JSON: {ex}") from ex
    if not isinstance(data, dict):
        raise CopyGenerationError("Model returned a non-object JSON value")
    out: Dict[str, str] = {}
    for p in PLATFORMS:
        v = data.get(p)
        if not isinstance(v, str) or not v.strip():
            raise CopyGenerationError(f"Model response missing '{p}'")
        out[p] = v.strip()
    return out


def _gemini_generate(prompt: str, json_mode: bool = False) -> str:
    if not GEMINI_API_KEY:
        raise CopyGenerationError("GEMINI_API_KEY not configured")
    generation_config = None
    if json_mode:
        generation_config = genai.GenerationConfig(
            response_mime_type="application/json",
            response_schema=_RESPONSE_SCHEMA,
        )
    try:
        model = genai.GenerativeModel(GEMINI_MODEL)
        response = model.generate_content(prompt, generation_config=generation_config)
    except Exception as ex:
        logger.warning(f"[copywriter] Gemini request failed: {ex}")
        raise CopyGenerationError(f"Gemini request failed: {ex}") from ex
    try:
        return response.text or ""
    except ValueError:
        # No candidates (blocked or empty)
        return ""


def generate_ads(data: Dict[str, Any], profile: Dict[str, Any]) -> Dict[str, str]:
    prop = normalize_property(data)
    text = _gemini_generate(build_ads_prompt(prop, profile), json_mode=True)
    ads = parse_ads(text)
    return {p: ensure_contact_block(ads[p], profile) for p in PLATFORMS}


def generate_single_ad(platform: str, data: Dict[str, Any], profile: Dict[str, Any]) -> str:
    platform = (platform or "").strip().lower()
    if platform not in PLATFORMS:
        raise ValueError(f"unknown platform: {platform}")
    prop = normalize_property(data)
    text = (_gemini_generate(build_single_prompt(platform, prop, profile)) or "").strip()
    if not text:
        raise CopyGenerationError("Empty response from model")
    return ensure_contact_block(text, profile)
