from __future__ import annotations
from typing import Any, Mapping

from .config import LOCALE as _DEFAULT_LOCALE

# ===============================================================
# Locale toggle (full-string variants)
# ===============================================================
LOCALES = ("en", "tr")
LOCALE: str = _DEFAULT_LOCALE if _DEFAULT_LOCALE in LOCALES else "en"


# ===============================================================
# Storage + formatting helpers (variant-aware)
# ===============================================================
class _VariantMap(dict[str, Any]):
    """
    Accept values as:
      - plain strings (treated as {'en': value})
      - mappings with 'en' and/or 'tr' keys
    """

    @staticmethod
    def _coerce(value: Any) -> Mapping[str, str]:
        if isinstance(value, str):
            return {"en": value}
        if isinstance(value, Mapping):
            out: dict[str, str] = {}
            for k, v in value.items():
                if isinstance(v, str):
                    out[str(k)] = v
            if "en" not in out:
                out["en"] = next(iter(out.values()), "")
            return out
        return {"en": str(value)}

    def __setitem__(self, key: str, value: Any) -> None:
        super().__setitem__(key, self._coerce(value))

    def update(self, other: Mapping[str, Any] | None = None, /, **kwargs: Any) -> None:  # type: ignore[override]
        if other:
            for k, v in other.items():
                super().__setitem__(k, self._coerce(v))
        for k, v in kwargs.items():
            super().__setitem__(k, self._coerce(v))


_STRINGS: dict[str, Mapping[str, str]] = _VariantMap()


def _pick_template(key: str) -> str:
    entry = _STRINGS.get(key)
    if not entry:
        return key
    return entry.get(LOCALE) or entry.get("en") or next(iter(entry.values()), key)


def S(key: str, /, **fmt: Any) -> str:
    """Lookup + format (locale-aware). Safe on format errors."""
    template = _pick_template(key)
    try:
        return template.format(**fmt) if fmt else template
    except Exception:
        return template


# ===============================================================
# String table
# ===============================================================

_STRINGS.update(
    {
        "common.guild_only": {
            "en": "This command only works in a server.",
            "tr": "Bu komut yalnızca bir sunucuda çalışır.",
        },
        "common.yes": {"en": "Yes", "tr": "Evet"},
        "common.no": {"en": "No", "tr": "Hayır"},
        "common.none": {"en": "None", "tr": "Yok"},
        "common.error": {
            "en": "An error occurred.",
            "tr": "Bir hata oluştu.",
        },
        "common.storage_unavailable": {
            "en": "Stored data is unavailable right now. Try again later.",
            "tr": "Kayıtlı verilere şu an ulaşılamıyor. Daha sonra tekrar deneyin.",
        },
        "common.member_not_found": {
            "en": "Member not found.",
            "tr": "Üye bulunamadı.",
        },
        "common.missing_permissions": {
            "en": "You need the Manage Server permission for this.",
            "tr": "Bunun için Sunucuyu Yönet yetkisi gerekiyor.",
        },
        # Periods
        "period.day": {"en": "Daily", "tr": "Günlük"},
        "period.week": {"en": "Weekly", "tr": "Haftalık"},
        "period.month": {"en": "Monthly", "tr": "Aylık"},
        # Metrics
        "metric.active": {"en": "Online", "tr": "Çevrimiçi"},
        "metric.qualifying": {"en": "Status", "tr": "Durum"},
        "metric.qualifying_while_active": {
            "en": "Status while online",
            "tr": "Çevrimiçiyken durum",
        },
        # Durations
        "duration.hm": {"en": "{h} h {m} min", "tr": "{h} sa {m} dk"},
        # Overview
        "presence.overview.title": {
            "en": "Monitoring Overview",
            "tr": "İzleme Özeti",
        },
        "presence.overview.body": {
            "en": "Monitored total: {total}\nCurrently online: {active}\nDesired status (current): {qualifying}",
            "tr": "İzlenen toplam: {total}\nŞu an çevrimiçi: {active}\nİstenen durum (şu an): {qualifying}",
        },
        "presence.overview.noncompliant": {
            "en": "Non-compliant (current)",
            "tr": "Uyumsuz (şu an)",
        },
        # Status
        "presence.status.body": {
            "en": "User: {user}\nOnline: {online}\nCustom Status: {custom}\nDesired status compliance: {compliant}",
            "tr": "Kullanıcı: {user}\nÇevrimiçi: {online}\nÖzel Durum: {custom}\nİstenen durum uyumu: {compliant}",
        },
        # Report
        "presence.report.title.day": {
            "en": "Daily Report ({label})",
            "tr": "Günlük Rapor ({label})",
        },
        "presence.report.title.week": {
            "en": "Weekly Report ({label})",
            "tr": "Haftalık Rapor ({label})",
        },
        "presence.report.title.month": {
            "en": "Monthly Report ({label})",
            "tr": "Aylık Rapor ({label})",
        },
        "presence.report.user": {"en": "User: {user}", "tr": "Kullanıcı: {user}"},
        "presence.report.online": {
            "en": "Total Online: {duration}",
            "tr": "Toplam Çevrimiçi: {duration}",
        },
        "presence.report.offline": {
            "en": "Total Offline: {duration}",
            "tr": "Toplam Çevrimdışı: {duration}",
        },
        "presence.report.status": {
            "en": "Desired Status Duration: {duration}",
            "tr": "İstenen Durum Süresi: {duration}",
        },
        "presence.report.status_online": {
            "en": "Desired Status While Online: {duration}",
            "tr": "Çevrimiçiyken İstenen Durum: {duration}",
        },
        "presence.report.online_sessions": {
            "en": "Online Sessions (first {n}):",
            "tr": "Çevrimiçi Oturumlar (ilk {n}):",
        },
        "presence.report.status_sessions": {
            "en": "Desired Status Sessions (first {n}):",
            "tr": "İstenen Durum Oturumları (ilk {n}):",
        },
        "presence.report.no_records": {"en": "(no records)", "tr": "(kayıt yok)"},
        "presence.report.ongoing": {"en": "(ongoing)", "tr": "(devam ediyor)"},
        # Mytime
        "presence.mytime.body": {
            "en": "User: {user}\nToday Online: {day}\nThis Week Online: {week}\nThis Month Online: {month}",
            "tr": "Kullanıcı: {user}\nBugün Çevrimiçi: {day}\nBu Hafta Çevrimiçi: {week}\nBu Ay Çevrimiçi: {month}",
        },
        # Ranking
        "presence.rank.title": {
            "en": "{period} Top {limit} ({metric}) · {label}",
            "tr": "{period} İlk {limit} ({metric}) · {label}",
        },
        "presence.rank.line": {
            "en": "#{rank} {name} — Online: {active}h, Status: {qualifying}h",
            "tr": "#{rank} {name} — Çevrimiçi: {active}sa, Durum: {qualifying}sa",
        },
        "presence.rank.empty": {
            "en": "No {period} data available yet.",
            "tr": "Henüz {period} veri yok.",
        },
        # Rollups
        "presence.rollup.done": {
            "en": "Rolled up **{label}**: {ok} member(s) stored, {failed} failed.",
            "tr": "**{label}** özetlendi: {ok} üye kaydedildi, {failed} başarısız.",
        },
        "presence.rollup.failed_list": {
            "en": "Failed: {members}",
            "tr": "Başarısız: {members}",
        },
    }
)
