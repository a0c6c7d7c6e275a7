import pytest

from notifications.sms_templates import (
    build_sms_data,
    format_phone_number,
    generate_batch_sms,
    generate_delay_sms,
    generate_registration_sms,
    generate_route_change_sms,
    generate_staff_change_sms,
    get_character_count,
    get_sms_template_description,
    validate_sms_data,
)
from sheets.schemas import Bus, Route, Student, TransportRegistration


@pytest.fixture
def sms_data():
    return {
        'student_name': 'Aisha Khan',
        'enrollment_no': 'E100',
        'bus_number': 'B1',
        'route_number': 'R1',
        'route_name': 'Al Sadd Loop',
        'stop_name': 'Main Gate',
        'driver_name': 'Rashid',
        'driver_contact': '55511111',
        'conductor_name': 'Anil',
        'conductor_contact': '55522222',
        'effective_date': '2024-05-01',
    }


@pytest.mark.parametrize('raw, expected', [
    ('5551 2345', '+97455512345'),
    ('+974 5551-2345', '+97455512345'),
    ('97455512345', '+97455512345'),
    ('', '+974'),
])
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_format_phone_number_other_country_code():
    assert format_phone_number('9876543210', country_code='91') == '+919876543210'


@pytest.mark.parametrize('length, segments, remaining', [
    (0, 0, 0),
    (1, 1, 159),
    (160, 1, 0),
    (161, 2, 159),
    (320, 2, 0),
])
def test_character_count(length, segments, remaining):
    assert get_character_count('x' * length) == {
        'count': length, 'segments': segments, 'remaining': remaining,
    }


def test_validate_reports_every_missing_field():
    result = validate_sms_data({'student_name': 'Aisha Khan'})
    assert result['valid'] is False
    assert len(result['errors']) == 4
    assert 'Bus number is required' in result['errors']


def test_validate_complete_bundle(sms_data):
    assert validate_sms_data(sms_data) == {'valid': True, 'errors': []}


def test_registration_sms(sms_data):
    message = generate_registration_sms(sms_data, school_name='Test School')
    assert message.startswith('Dear Parent,')
    assert 'Conductor: Anil (55522222)' in message
    assert message.endswith('Test School\nTransport Department')


def test_missing_fields_render_blank(sms_data):
    del sms_data['driver_name']
    assert 'Driver:  (55511111)' in generate_registration_sms(sms_data)


def test_route_change_lists_only_real_changes(sms_data):
    sms_data.update({
        'old_bus_number': 'B1', 'new_bus_number': 'B1',
        'old_route': 'Al Sadd Loop', 'new_route': 'Najma Line',
    })
    message = generate_route_change_sms(sms_data)
    assert 'Route: Al Sadd Loop → Najma Line' in message
    assert 'Bus: B1 →' not in message


def test_staff_change(sms_data):
    sms_data.update({'old_driver': 'Rashid', 'new_driver': 'Hamid'})
    message = generate_staff_change_sms(sms_data)
    assert 'Driver: Rashid → Hamid' in message
    assert 'Conductor: ' in message


def test_delay_sms():
    message = generate_delay_sms('B2', 'Najma Line', 15, 'Traffic', school_name='Test School')
    assert 'approximately 15 minutes late' in message
    assert 'Reason: Traffic' in message


def test_template_descriptions():
    assert get_sms_template_description('cancellation') == 'Transport service cancellation notice'
    assert get_sms_template_description('unknown') == 'General transport notification'


def test_batch_sms(sms_data):
    other = dict(sms_data, student_name='Zara Ali', enrollment_no='E102')
    batch = generate_batch_sms('cancellation', [sms_data, other])

    assert [item['enrollmentNo'] for item in batch] == ['E100', 'E102']
    assert all(item['phoneNumbers'] == [] for item in batch)
    assert 'Zara Ali (E102)' in batch[1]['message']


def test_batch_sms_unknown_type(sms_data):
    with pytest.raises(ValueError):
        generate_batch_sms('reminder', [sms_data])


def test_build_sms_data_from_entities():
    data = build_sms_data(
        Student('E100', 'Aisha Khan'),
        TransportRegistration('E100', 'B1', 'R1', 'Main Gate'),
        Bus('B1', 40, 'R1', 'Rashid', '555'),
        Route('R1', 'Al Sadd Loop', ['Main Gate']),
        '2024-05-01',
    )
    assert data['student_name'] == 'Aisha Khan'
    assert data['route_name'] == 'Al Sadd Loop'
    assert data['driver_contact'] == '555'
    assert data['effective_date'] == '2024-05-01'


def test_build_sms_data_without_bus_or_route():
    data = build_sms_data(None, TransportRegistration('E100', 'B1', 'R1', 'Main Gate'), None, None, '')
    assert data['student_name'] == ''
    assert data['driver_name'] == ''
    assert data['bus_number'] == 'B1'
