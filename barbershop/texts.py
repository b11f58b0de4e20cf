SHOP_NAME = "BarberTesters"
ADDRESS_LINE = "г. Тула, ул. Болдина, д. 149"
PHONE_DISPLAY = "+7 (980) 547-04-06"
WORKING_HOURS = "Ежедневно 10:00–21:00"

GREETING = (
    "💈 Добро пожаловать в BarberTesters!\n"
    "Мужская территория.\n\n"
    "Здесь можно:\n"
    "• записаться к мастеру на удобное время\n"
    "• посмотреть мастеров, услуги и цены\n"
    "• проверить или отменить свои записи\n\n"
    "Жми «Записаться» 👇"
)

CONTACTS = (
    "📍 Адрес\n"
    f"{ADDRESS_LINE}\n\n"
    "📞 Телефон\n"
    f"{PHONE_DISPLAY}\n\n"
    "🕒 Режим работы\n"
    f"{WORKING_HOURS}"
)

PROMO_BANNER = (
    "🔥 Акция «Отец + Сын»: семейный визит со скидкой 15%.\n"
    "Две стрижки в одно время."
)

HONEST_PRICE = (
    "🛡 Цена указана «ОТ» за базовую сложность. Мы ценим время и труд.\n"
    "Длинная борода, густые волосы или полная смена имиджа требуют больше времени и косметики. "
    "Точную стоимость мастер озвучит после консультации, но ДО начала стрижки."
)

ONE_BOOKING_PER_DAY = (
    "У вас уже есть запись на этот день.\n"
    "Система разрешает одну запись в день.\n"
    "Хотите добавить ещё одну услугу на этот день? Позвоните администратору: {phone}"
)

CANCEL_WARNING = "Вы уверены? Место может занять кто-то другой."
