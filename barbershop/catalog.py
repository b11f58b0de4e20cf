from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class ServiceOffer:
    service_id: str
    price: int
    duration_min: int


@dataclass(frozen=True)
class Barber:
    id: str
    name: str
    tier: str
    description: str
    image: str
    rating: float
    offers: tuple[ServiceOffer, ...]
    work_days: frozenset[int]  # 0 = воскресенье, 1 = понедельник, ...
    tags: tuple[str, ...] = ()


PROMO_SERVICE_ID = "s5"
PROMO_DISCOUNT = 0.85

SERVICES: tuple[Service, ...] = (
    Service("s1", "Мужская Стрижка", "Мытье, стрижка, укладка. Классика или Фейд."),
    Service("s2", "Оформление Бороды", "Коррекция длины и контуров. Бритье шейки."),
    Service("s3", "Стрижка + Борода", "Полный комплекс. Выгоднее вместе."),
    Service("s4", "Детская Стрижка", "Для юных джентльменов (до 12 лет)."),
    Service("s5", "Отец + Сын", "Семейный визит. Две стрижки в одно время."),
    Service("s6", "Камуфляж Седины", "Тонирование головы или бороды. Эффект до 2 недель."),
    Service("s7", "Королевское Бритье", "Опасная бритва, распаривание, массаж."),
)

BARBERS: tuple[Barber, ...] = (
    Barber(
        id="b1",
        name='Алекс "Maverick"',
        tier="Top Barber",
        description=(
            "Виртуоз классики и удлиненных стрижек. Опыт 7 лет. Бренд-амбассадор "
            "барбер-культуры. Стрижет долго, дорого, идеально."
        ),
        image="https://images.unsplash.com/photo-1567894340315-735d7c361db0?w=800&auto=format&fit=crop&q=60",
        rating=5.0,
        tags=("🗣️ Любит поболтать", "📸 Перфекционист", "☕ Кофеман"),
        work_days=frozenset({1, 3, 4, 5, 6}),
        offers=(
            ServiceOffer("s1", 2500, 60),
            ServiceOffer("s2", 1500, 45),
            ServiceOffer("s3", 3500, 90),
            ServiceOffer("s5", 4000, 90),
            ServiceOffer("s7", 2500, 60),
        ),
    ),
    Barber(
        id="b2",
        name='Виктор "Viking"',
        tier="Beard Expert",
        description=(
            "Специалист по сложным бородам и брутальным образам. Знает о бритье всё. "
            "Если нужна идеальная геометрия бороды — вам к нему."
        ),
        image="https://images.unsplash.com/photo-1531891437562-4301cf35b7e4?w=800&auto=format&fit=crop&q=60",
        rating=4.9,
        tags=("🪓 Брутал", "🤫 Спокойный", "🧔 Борода"),
        work_days=frozenset({2, 4, 5, 6, 0}),
        offers=(
            ServiceOffer("s1", 2000, 45),
            ServiceOffer("s2", 1800, 45),
            ServiceOffer("s3", 3200, 90),
            ServiceOffer("s6", 1200, 30),
            ServiceOffer("s7", 2200, 60),
        ),
    ),
    Barber(
        id="b3",
        name='Костя "Fade"',
        tier="Senior Barber",
        description=(
            "Мастер коротких форм. Фейд любой сложности, Кроп, Цезарь. "
            "Быстрота и точность движений. Опыт 5 лет."
        ),
        image="https://images.unsplash.com/photo-1472099645785-5658abf4ff4e?w=800&auto=format&fit=crop&q=60",
        rating=4.8,
        tags=("⚽ Футбол", "🎮 Геймер", "🔥 Смелые стрижки"),
        work_days=frozenset({1, 2, 3, 4, 5}),
        offers=(
            ServiceOffer("s1", 1800, 45),
            ServiceOffer("s2", 1200, 30),
            ServiceOffer("s3", 2600, 75),
            ServiceOffer("s4", 1400, 45),
            ServiceOffer("s5", 3000, 75),
        ),
    ),
    Barber(
        id="b4",
        name="Дмитрий",
        tier="Middle Barber",
        description=(
            "Универсал с уклоном в уличный стиль. Отлично работает с текстурой. "
            "Внимателен к пожеланиям клиента. Опыт 3 года."
        ),
        image="https://images.unsplash.com/photo-1503443207922-dff7d543fd0e?w=800&auto=format&fit=crop&q=60",
        rating=4.7,
        tags=("🎧 Музыка", "🛹 Стритвир", "👂 Слушатель"),
        work_days=frozenset({3, 4, 5, 6, 0}),
        offers=(
            ServiceOffer("s1", 1500, 60),
            ServiceOffer("s2", 1000, 45),
            ServiceOffer("s3", 2200, 90),
            ServiceOffer("s4", 1200, 45),
            ServiceOffer("s6", 1000, 30),
        ),
    ),
    Barber(
        id="b5",
        name="Макс",
        tier="Junior Barber",
        description=(
            "Молодой талант. Работает медленнее топов, но с запредельной старательностью. "
            "Проходит обучение у старших мастеров."
        ),
        image="https://images.unsplash.com/photo-1506794778202-cad84cf45f1d?w=800&auto=format&fit=crop&q=60",
        rating=4.5,
        tags=("🐢 Старательный", "👶 Молодой", "🎓 Ученик"),
        work_days=frozenset({1, 2, 3, 4, 5, 6, 0}),
        offers=(
            ServiceOffer("s1", 1000, 75),
            ServiceOffer("s2", 800, 60),
            ServiceOffer("s3", 1600, 120),
            ServiceOffer("s4", 900, 60),
        ),
    ),
    Barber(
        id="b6",
        name="Сергей Палыч",
        tier="Old School",
        description=(
            "Легенда заведения. Только классика, только ножницы, только хардкор. "
            "Опыт более 15 лет. Молчалив и сосредоточен."
        ),
        image="https://images.unsplash.com/photo-1519085360753-af0119f7cbe7?w=800&auto=format&fit=crop&q=60",
        rating=5.0,
        tags=("🗿 Молчун", "⚡ Быстро", "🥃 Классика"),
        work_days=frozenset({5, 6, 0}),
        offers=(
            ServiceOffer("s1", 2000, 45),
            ServiceOffer("s7", 2500, 60),
            ServiceOffer("s5", 3500, 75),
        ),
    ),
)

_BARBERS_BY_ID = {b.id: b for b in BARBERS}
_SERVICES_BY_ID = {s.id: s for s in SERVICES}


def get_barber(barber_id: str | None) -> Barber | None:
    if barber_id is None:
        return None
    return _BARBERS_BY_ID.get(str(barber_id))


def get_service(service_id: str | None) -> Service | None:
    if service_id is None:
        return None
    return _SERVICES_BY_ID.get(str(service_id))


def get_offer(barber: Barber, service_id: str) -> ServiceOffer | None:
    return next((o for o in barber.offers if o.service_id == service_id), None)


def promo_price(service_id: str, price: int) -> int:
    if service_id == PROMO_SERVICE_ID:
        return math.floor(price * PROMO_DISCOUNT)
    return price


def final_price(offer: ServiceOffer) -> int:
    """Price the client pays, with the family promo applied."""
    return promo_price(offer.service_id, offer.price)


def min_price(service_id: str) -> int | None:
    prices = [o.price for b in BARBERS for o in b.offers if o.service_id == service_id]
    if not prices:
        return None
    return min(prices)


def barbers_for(service_id: str | None = None) -> list[Barber]:
    items = list(BARBERS)
    if service_id:
        items = [b for b in items if get_offer(b, service_id)]
    return sorted(items, key=lambda b: b.rating, reverse=True)


def services_of(barber: Barber) -> list[tuple[ServiceOffer, Service]]:
    out: list[tuple[ServiceOffer, Service]] = []
    for offer in barber.offers:
        service = get_service(offer.service_id)
        if service is None:
            continue
        out.append((offer, service))
    return out
