"""
User-facing message catalog (Indonesian).

Every fixed string the assistant can say lives here, so the agent loop
and the formatter never embed copy.
"""

from typing import Optional

from dompetku.models.tools import ErrorCode


GREETING = (
    "Halo! 👋 Aku Dompetku, asisten keuanganmu.\n\n"
    "Cukup ceritakan transaksimu, misalnya:\n"
    "• \"beli kopi 25rb\"\n"
    "• \"gaji 5 juta\"\n"
    "• \"laporan bulan ini\""
)

STEP_LIMIT = "Kita hentikan dulu ya, batas langkah AI tercapai."

GENERIC_HELP = (
    "🤖 **Hmm, saya tidak mengerti...**\n\n"
    "Bisa dijelaskan dengan cara lain?\n\n"
    "💡 **Contoh yang bisa saya pahami:**\n"
    "• \"beli kopi 25rb\" - catat pengeluaran\n"
    "• \"gaji 5 juta\" - catat pemasukan\n"
    "• \"budget makanan 1 juta\" - atur budget\n"
    "• \"laporan bulan ini\" - lihat ringkasan"
)

MAIN_HELP = (
    "📖 **Panduan Dompetku**\n\n"
    "Ceritakan transaksimu dengan bahasa sehari-hari:\n"
    "• \"beli kopi 25rb\" - catat pengeluaran\n"
    "• \"gaji 5 juta\" - catat pemasukan\n"
    "• \"budget makanan 1 juta\" - atur budget\n"
    "• \"status budget\" - cek sisa budget\n"
    "• \"laporan bulan ini\" - lihat ringkasan\n"
    "• \"tambah saldo 50rb\" - isi saldo dan koin\n\n"
    "🎤 Pesan suara dan 📸 foto struk memakai koin."
)

HELP_TOPICS: dict[str, str] = {
    "pengeluaran": "expense",
    "expense": "expense",
    "pemasukan": "income",
    "income": "income",
    "budget": "budget",
    "anggaran": "budget",
    "laporan": "report",
    "report": "report",
    "saldo": "balance",
    "koin": "balance",
    "balance": "balance",
}

BUCKET_HELP: dict[str, str] = {
    "expense": (
        "🤔 **Sepertinya kamu ingin mencatat pengeluaran...**\n\n"
        "💡 **Coba sebutkan nominalnya, misalnya:**\n"
        "• \"beli kopi 25rb\"\n"
        "• \"bayar listrik 150000\"\n"
        "• \"makan siang Rp 35.000\""
    ),
    "income": (
        "🤔 **Sepertinya kamu ingin mencatat pemasukan...**\n\n"
        "💡 **Coba sebutkan nominalnya, misalnya:**\n"
        "• \"gaji bulan ini 5 juta\"\n"
        "• \"dapat bonus 500rb\"\n"
        "• \"freelance project 2 juta\""
    ),
    "budget": (
        "🤔 **Sepertinya kamu ingin mengatur budget...**\n\n"
        "💡 **Coba format ini:**\n"
        "• \"budget makanan 1 juta\"\n"
        "• \"budget transportasi 500rb mingguan\"\n"
        "• \"status budget\" - untuk cek budget"
    ),
    "report": (
        "🤔 **Sepertinya kamu ingin melihat laporan...**\n\n"
        "💡 **Coba format ini:**\n"
        "• \"laporan bulan ini\"\n"
        "• \"ringkasan minggu ini\"\n"
        "• \"rekap tahun ini\""
    ),
    "balance": (
        "🤔 **Sepertinya kamu ingin mengecek atau menambah saldo...**\n\n"
        "💡 **Coba format ini:**\n"
        "• \"tambah saldo 50rb\" - top up\n"
        "• \"berapa koin saya\""
    ),
}

ERROR_MESSAGES: dict[str, str] = {
    ErrorCode.INSUFFICIENT_BALANCE.value: "❌ Saldo koin tidak cukup. Silakan tambah saldo terlebih dahulu.",
    ErrorCode.VOUCHER_INVALID.value: "❌ Kode voucher tidak valid atau sudah kadaluarsa.",
    ErrorCode.VOUCHER_ALREADY_USED.value: "❌ Voucher ini sudah pernah digunakan.",
    ErrorCode.CATEGORY_NOT_FOUND.value: "❌ Kategori tidak ditemukan.",
    ErrorCode.EXPENSE_NOT_FOUND.value: "❌ Pengeluaran tidak ditemukan.",
    ErrorCode.NO_EXPENSES_FOUND.value: "❌ Belum ada pengeluaran yang bisa diubah.",
    ErrorCode.BUDGET_NOT_FOUND.value: "❌ Belum ada budget. Coba \"budget makanan 1 juta\".",
    ErrorCode.MEMORY_NOT_FOUND.value: "❌ Aku belum menyimpan catatan itu.",
    ErrorCode.VALIDATION_ERROR.value: "❌ Data yang dimasukkan tidak valid. Silakan periksa kembali.",
    ErrorCode.INVALID_ARGUMENTS.value: "❌ Argumen tidak valid.",
    ErrorCode.TOOL_NOT_FOUND.value: "❌ Fitur yang diminta tidak tersedia.",
    ErrorCode.EXECUTION_ERROR.value: "❌ Terjadi kesalahan saat memproses permintaan.",
}

MEDIA_FAILED = "❌ Maaf, aku gagal membaca file itu. Koinmu sudah dikembalikan."

THINKING_TEMPLATES = [
    "⏳ Lagi mikir bentar ya…",
    "🧠 Aku proses dulu, sabar ya ✨",
    "🔎 Lagi cek catatanmu…",
    "✍️ Sebentar, lagi aku hitung…",
    "🤔 Hmm, aku pikirkan dulu ya…",
]

TOOL_PROGRESS = "🛠️ Menjalankan tool: {tool_name}…"


def error_message(code: Optional[str], raw_message: str = "") -> str:
    """Localized text for an error code; unknown codes show the raw error."""
    if code and code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]
    return f"❌ {raw_message or code or 'Terjadi kesalahan.'}"


def contextual_help(buckets: list[str]) -> str:
    """Help for the first matched bucket, or the generic help."""
    for bucket in buckets:
        if bucket in BUCKET_HELP:
            return BUCKET_HELP[bucket]
    return GENERIC_HELP
